from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession

from schoollink.database import get_db
from schoollink.schemas.grades import GradeCreate, GradeInDB, ClassSubjectGradeRow, StudentAverageRow
from schoollink.models.users import User, UserRole
from schoollink.middleware.authentication import get_current_user, RoleChecker
from schoollink.services import grades

router = APIRouter()

allow_grade_entry = RoleChecker([UserRole.SUPER_ADMIN, UserRole.SCHOOL_ADMIN, UserRole.TEACHER])

@router.post("/grades", response_model=GradeInDB)
async def enter_grade(
    grade_data: GradeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_grade_entry)
):
    """
    Enter or update a student's score for a subject and assessment period.
    Semester and yearly averages are recalculated before the response is sent.
    """
    return await grades.enter_grade(
        db,
        current_user,
        student_id=grade_data.student_id,
        class_id=grade_data.class_id,
        subject_id=grade_data.subject_id,
        assessment_period_id=grade_data.assessment_period_id,
        score=grade_data.score,
        school_id=grade_data.school_id,
    )

@router.get("/grades/class-subject", response_model=List[ClassSubjectGradeRow])
async def get_class_subject_grades(
    class_id: int = Query(..., gt=0),
    subject_id: int = Query(..., gt=0),
    period_id: int = Query(..., gt=0),
    school_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get every enrolled student of a class with their grade for a subject and period.
    """
    return await grades.get_class_subject_grades(
        db,
        current_user,
        class_id=class_id,
        subject_id=subject_id,
        assessment_period_id=period_id,
        school_id=school_id,
    )

@router.get("/grades/student/{student_id}/academic-year/{academic_year_id}", response_model=List[StudentAverageRow])
async def get_student_grade_report(
    student_id: int = Path(..., gt=0),
    academic_year_id: int = Path(..., gt=0),
    school_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get a student's semester and yearly averages for every subject.
    """
    return await grades.get_student_grade_report(
        db,
        current_user,
        student_id=student_id,
        academic_year_id=academic_year_id,
        school_id=school_id,
    )
