import logging
import math
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from schoollink.database import transaction
from schoollink.exceptions import ForbiddenError, LockedPeriodError, NotFoundError, ValidationError
from schoollink.models.academics import AcademicYear, AssessmentPeriod, Semester, StudentAverage, StudentGrade
from schoollink.models.schools import ClassSubject, Subject
from schoollink.models.users import EnrollmentStatus, Student, StudentEnrollment, User, UserRole
from schoollink.schemas.grades import ClassSubjectGradeRow, GradeInDB, StudentAverageRow
from schoollink.services.authorization import (
    GRADE_ENTRY_ROLES, ensure_school_access, require_roles, require_school, resolve_effective_school,
)
from schoollink.services.averages import recompute_averages

logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 100


async def _ensure_teaches(db: AsyncSession, caller: User, class_id: Optional[int], subject_id: int) -> None:
    """Teachers may only grade subjects they are assigned to in that class."""
    if caller.role != UserRole.TEACHER:
        return
    result = await db.execute(
        select(ClassSubject.id).where(
            ClassSubject.class_id == class_id,
            ClassSubject.subject_id == subject_id,
            ClassSubject.teacher_id == caller.id,
        )
    )
    if not result.scalars().first():
        raise ForbiddenError("You do not have permission to enter grades for this subject in this class")


async def enter_grade(
    db: AsyncSession,
    caller: User,
    *,
    student_id: int,
    subject_id: int,
    assessment_period_id: int,
    score: Optional[float],
    class_id: Optional[int] = None,
    school_id: Optional[int] = None,
) -> GradeInDB:
    """
    Record a student's score for one subject and assessment period.

    A second entry for the same student, subject and period overwrites the
    first. The semester and yearly averages are recomputed in the same
    transaction, so a grade is never committed with stale averages.
    """
    require_roles(caller, GRADE_ENTRY_ROLES, "You do not have permission to enter grades")

    if score is None or not math.isfinite(score) or not MIN_SCORE <= score <= MAX_SCORE:
        raise ValidationError("Score must be between 0 and 100")

    period_result = await db.execute(
        select(AssessmentPeriod, Semester.academic_year_id)
        .join(Semester, AssessmentPeriod.semester_id == Semester.id)
        .where(AssessmentPeriod.id == assessment_period_id)
    )
    row = period_result.first()
    if not row:
        raise NotFoundError("Assessment period not found")
    period, academic_year_id = row

    if period.is_locked:
        logger.warning(
            f"Rejected grade for student {student_id} in locked period {assessment_period_id} "
            f"[user_id: {caller.id}]"
        )
        raise LockedPeriodError(f"{period.period_name} is locked and no longer accepts grades")

    student_result = await db.execute(select(Student).where(Student.id == student_id))
    student = student_result.scalars().first()
    if not student:
        raise NotFoundError("Student not found")
    ensure_school_access(caller, student.school_id, "Not authorized to record grades for students from another school")

    subject_result = await db.execute(select(Subject).where(Subject.id == subject_id))
    subject = subject_result.scalars().first()
    if not subject:
        raise NotFoundError("Subject not found")
    if subject.school_id != student.school_id or period.school_id != student.school_id:
        raise ValidationError("Subject and assessment period must belong to the student's school")

    final_school_id = resolve_effective_school(caller, school_id) or student.school_id
    if final_school_id != student.school_id:
        raise ValidationError("Student does not belong to the specified school")

    await _ensure_teaches(db, caller, class_id, subject_id)

    async with transaction(db, "enter_grade"):
        existing_result = await db.execute(
            select(StudentGrade).where(
                StudentGrade.student_id == student_id,
                StudentGrade.subject_id == subject_id,
                StudentGrade.assessment_period_id == assessment_period_id,
            )
        )
        grade = existing_result.scalars().first()
        now = datetime.now(timezone.utc)

        if grade:
            grade.score = score
            grade.teacher_id = caller.id
            grade.entered_at = now
        else:
            grade = StudentGrade(
                student_id=student_id,
                class_id=class_id,
                subject_id=subject_id,
                assessment_period_id=assessment_period_id,
                academic_year_id=academic_year_id,
                school_id=final_school_id,
                score=score,
                teacher_id=caller.id,
                entered_at=now,
            )
            db.add(grade)
        await db.flush()

        await recompute_averages(
            db,
            student_id=student_id,
            subject_id=subject_id,
            academic_year_id=academic_year_id,
            semester_id=period.semester_id,
            school_id=final_school_id,
        )

    logger.info(
        f"Grade {score} entered for student {student_id}, subject {subject_id}, "
        f"period {assessment_period_id} [user_id: {caller.id}]"
    )
    return GradeInDB.model_validate(grade)


async def get_class_subject_grades(
    db: AsyncSession,
    caller: User,
    *,
    class_id: int,
    subject_id: int,
    assessment_period_id: int,
    school_id: Optional[int] = None,
) -> List[ClassSubjectGradeRow]:
    """
    Grade sheet for one class, subject and period.

    Lists every enrolled student of the class with their grade, if one has
    been entered.
    """
    final_school_id = require_school(caller, school_id)
    await _ensure_teaches(db, caller, class_id, subject_id)

    result = await db.execute(
        select(
            Student.id,
            Student.student_number,
            Student.first_name,
            Student.last_name,
            StudentGrade.id,
            StudentGrade.score,
            StudentGrade.entered_at,
            User.full_name,
        )
        .join(StudentEnrollment, Student.id == StudentEnrollment.student_id)
        .outerjoin(
            StudentGrade,
            and_(
                StudentGrade.student_id == Student.id,
                StudentGrade.subject_id == subject_id,
                StudentGrade.assessment_period_id == assessment_period_id,
            ),
        )
        .outerjoin(User, StudentGrade.teacher_id == User.id)
        .where(
            StudentEnrollment.class_id == class_id,
            StudentEnrollment.status == EnrollmentStatus.ENROLLED.value,
            Student.school_id == final_school_id,
        )
        .order_by(Student.first_name, Student.last_name)
    )

    return [
        ClassSubjectGradeRow(
            student_id=sid,
            student_number=number,
            first_name=first,
            last_name=last,
            grade_id=grade_id,
            score=score,
            entered_at=entered_at,
            entered_by=entered_by,
        )
        for sid, number, first, last, grade_id, score, entered_at, entered_by in result.all()
    ]


async def get_student_grade_report(
    db: AsyncSession,
    caller: User,
    *,
    student_id: int,
    academic_year_id: int,
    school_id: Optional[int] = None,
) -> List[StudentAverageRow]:
    final_school_id = require_school(caller, school_id)

    year_result = await db.execute(select(AcademicYear.id).where(AcademicYear.id == academic_year_id))
    if not year_result.scalars().first():
        raise NotFoundError("Academic year not found")

    result = await db.execute(
        select(
            Subject.id,
            Subject.name,
            Subject.code,
            Subject.is_core,
            Semester.semester_number,
            StudentAverage.semester_average,
            StudentAverage.yearly_average,
            StudentAverage.grade_status,
        )
        .join(Subject, StudentAverage.subject_id == Subject.id)
        .outerjoin(Semester, StudentAverage.semester_id == Semester.id)
        .where(
            StudentAverage.student_id == student_id,
            StudentAverage.academic_year_id == academic_year_id,
            StudentAverage.school_id == final_school_id,
        )
        .order_by(Subject.name, Semester.semester_number)
    )

    return [
        StudentAverageRow(
            subject_id=subject_id,
            subject_name=name,
            subject_code=code,
            is_core=is_core,
            semester_number=semester_number,
            semester_average=sem_avg,
            yearly_average=year_avg,
            grade_status=status,
        )
        for subject_id, name, code, is_core, semester_number, sem_avg, year_avg, status in result.all()
    ]
