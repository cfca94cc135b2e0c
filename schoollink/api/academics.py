from typing import List, Optional
from fastapi import APIRouter, Depends, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession

from schoollink.database import get_db
from schoollink.schemas.academics import (
    AcademicYearCreate, AcademicYearDetail, AcademicYearSummary,
    SemesterInDB, AssessmentPeriodInDB, PeriodLockUpdate,
    GradingConfigInDB, GradingConfigUpdate,
)
from schoollink.models.users import User, UserRole
from schoollink.middleware.authentication import get_current_user, RoleChecker
from schoollink.services import calendar

router = APIRouter()

# Role-based access control
allow_academics_management = RoleChecker([UserRole.SUPER_ADMIN, UserRole.SCHOOL_ADMIN])

# Academic Year endpoints
@router.post("/academic-years", response_model=AcademicYearDetail, status_code=status.HTTP_201_CREATED)
async def create_academic_year(
    year_data: AcademicYearCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_academics_management)
):
    """
    Create a new academic year with its two semesters and eight assessment periods.
    """
    return await calendar.create_academic_year(
        db,
        current_user,
        year_name=year_data.year_name,
        start_date=year_data.start_date,
        end_date=year_data.end_date,
        school_id=year_data.school_id,
        is_current=year_data.is_current,
    )

@router.get("/academic-years", response_model=List[AcademicYearSummary])
async def get_academic_years(
    school_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get all academic years of a school, most recent first.
    """
    return await calendar.list_academic_years(db, current_user, school_id)

@router.get("/academic-years/{year_id}", response_model=AcademicYearDetail)
async def get_academic_year(
    year_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get an academic year with its semesters and periods.
    """
    return await calendar.get_academic_year(db, current_user, year_id)

@router.put("/academic-years/{year_id}/set-current", response_model=AcademicYearDetail)
async def set_current_academic_year(
    year_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_academics_management)
):
    """
    Make an academic year, and its first semester, current for its school.
    """
    return await calendar.set_current_academic_year(db, current_user, year_id)

# Semester endpoints
@router.put("/semesters/{semester_id}/set-current", response_model=SemesterInDB)
async def set_current_semester(
    semester_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_academics_management)
):
    """
    Make a semester current for its school.
    """
    return await calendar.set_current_semester(db, current_user, semester_id)

# Assessment Period endpoints
@router.put("/assessment-periods/{period_id}/lock", response_model=AssessmentPeriodInDB)
async def toggle_period_lock(
    lock_data: PeriodLockUpdate,
    period_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_academics_management)
):
    """
    Lock or unlock an assessment period. Locked periods reject grade entry.
    """
    return await calendar.toggle_period_lock(db, current_user, period_id, lock_data.is_locked)

# Grading configuration endpoints
@router.get("/grading-config", response_model=GradingConfigInDB)
async def get_grading_config(
    school_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await calendar.get_grading_config(db, current_user, school_id)

@router.put("/grading-config", response_model=GradingConfigInDB)
async def update_grading_config(
    config_data: GradingConfigUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(allow_academics_management)
):
    changes = config_data.model_dump(exclude_unset=True)
    school_id = changes.pop("school_id", None)
    return await calendar.update_grading_config(db, current_user, school_id, **changes)
