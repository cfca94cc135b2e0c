"""
Report card assembly: one row per subject of the student's class, one column
per period, exam, semester average and yearly average, plus a row of column
averages across subjects.
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from schoollink.config import settings
from schoollink.exceptions import NotFoundError
from schoollink.models.academics import AcademicYear, AssessmentPeriod, Semester, StudentAverage, StudentGrade
from schoollink.models.schools import Class, ClassSubject, School, Subject
from schoollink.models.users import EnrollmentStatus, Student, StudentEnrollment, User
from schoollink.schemas.report_cards import (
    ReportAcademicYearInfo, ReportCardData, ReportColumns, ReportSchoolInfo,
    ReportStudentInfo, SubjectReportRow,
)
from schoollink.services.authorization import resolve_effective_school

logger = logging.getLogger(__name__)

REPORT_COLUMNS = (
    "period1", "period2", "period3", "sem1_exam", "sem1_average",
    "period4", "period5", "period6", "sem2_exam", "sem2_average",
    "yearly_average",
)

# (semester_number, period_number) -> report column
PERIOD_COLUMNS = {
    (1, 1): "period1",
    (1, 2): "period2",
    (1, 3): "period3",
    (1, 4): "sem1_exam",
    (2, 1): "period4",
    (2, 2): "period5",
    (2, 3): "period6",
    (2, 4): "sem2_exam",
}

SEMESTER_AVERAGE_COLUMNS = {
    1: "sem1_average",
    2: "sem2_average",
}

PASS_COLOR = "pass"
FAIL_COLOR = "fail"
NEUTRAL_COLOR = "neutral"


def score_color(value: Optional[float]) -> str:
    """Color class of a report card cell: pass, fail, or neutral when empty."""
    if value is None:
        return NEUTRAL_COLOR
    return PASS_COLOR if value >= settings.PASS_MARK else FAIL_COLOR


def build_subject_row(
    subject: Subject,
    grades: Iterable[Tuple[int, int, Optional[float]]],
    averages: Iterable[Tuple[Optional[int], Optional[float], Optional[float], Optional[str]]],
) -> SubjectReportRow:
    """
    Build one subject's row.

    ``grades`` holds (semester_number, period_number, score) and ``averages``
    holds (semester_number, semester_average, yearly_average, grade_status),
    with semester_number None for the yearly record. Semester averages are
    placed by semester number, never by the order the rows arrive in.
    """
    values: Dict[str, Optional[float]] = {}
    for semester_number, period_number, score in grades:
        column = PERIOD_COLUMNS.get((semester_number, period_number))
        if column and score is not None:
            values[column] = score

    status = None
    for semester_number, sem_avg, year_avg, grade_status in averages:
        if semester_number is None:
            if year_avg is not None:
                values["yearly_average"] = year_avg
                status = grade_status
        elif sem_avg is not None and semester_number in SEMESTER_AVERAGE_COLUMNS:
            values[SEMESTER_AVERAGE_COLUMNS[semester_number]] = sem_avg

    return SubjectReportRow(
        subject_id=subject.id,
        subject_name=subject.name,
        subject_code=subject.code,
        is_core=subject.is_core,
        grade_status=status,
        **values,
    )


def column_averages(rows: List[SubjectReportRow]) -> ReportColumns:
    """Mean of each column over the subjects that have a value in it."""
    averages = {}
    for column in REPORT_COLUMNS:
        present = [getattr(row, column) for row in rows if getattr(row, column) is not None]
        averages[column] = sum(present) / len(present) if present else None
    return ReportColumns(**averages)


async def _current_class(db: AsyncSession, student_id: int, academic_year_id: int) -> Optional[Class]:
    """The class the student is enrolled in, preferring this year's enrollment."""
    result = await db.execute(
        select(StudentEnrollment, Class)
        .join(Class, StudentEnrollment.class_id == Class.id)
        .where(
            StudentEnrollment.student_id == student_id,
            StudentEnrollment.status == EnrollmentStatus.ENROLLED.value,
        )
        .order_by(StudentEnrollment.id.desc())
    )
    enrollments = result.all()
    if not enrollments:
        return None
    for enrollment, class_ in enrollments:
        if enrollment.academic_year_id == academic_year_id:
            return class_
    return enrollments[0][1]


async def assemble_report_card(
    db: AsyncSession,
    caller: User,
    *,
    student_id: int,
    academic_year_id: int,
    school_id: Optional[int] = None,
) -> ReportCardData:
    """
    Gather everything the report card shows for one student and year.

    Missing scores stay None; a score of 0 is kept as 0.
    """
    requested_school_id = resolve_effective_school(caller, school_id)

    query = select(Student).where(Student.id == student_id)
    if requested_school_id:
        query = query.where(Student.school_id == requested_school_id)
    student_result = await db.execute(query)
    student = student_result.scalars().first()
    if not student:
        raise NotFoundError("Student not found")

    school_result = await db.execute(select(School).where(School.id == student.school_id))
    school = school_result.scalars().first()
    if not school:
        raise NotFoundError("School not found")

    year_result = await db.execute(select(AcademicYear).where(AcademicYear.id == academic_year_id))
    academic_year = year_result.scalars().first()
    if not academic_year or academic_year.school_id != student.school_id:
        raise NotFoundError("Academic year not found")

    class_ = await _current_class(db, student.id, academic_year.id)

    subjects = []
    if class_:
        subjects_result = await db.execute(
            select(Subject)
            .join(ClassSubject, Subject.id == ClassSubject.subject_id)
            .where(ClassSubject.class_id == class_.id)
            .distinct()
            .order_by(Subject.is_core.desc(), Subject.name)
        )
        subjects = subjects_result.scalars().all()

    grades_result = await db.execute(
        select(StudentGrade.subject_id, Semester.semester_number, AssessmentPeriod.period_number, StudentGrade.score)
        .join(AssessmentPeriod, StudentGrade.assessment_period_id == AssessmentPeriod.id)
        .join(Semester, AssessmentPeriod.semester_id == Semester.id)
        .where(
            StudentGrade.student_id == student.id,
            StudentGrade.academic_year_id == academic_year.id,
        )
    )
    grades_by_subject: Dict[int, list] = {}
    for subject_id, semester_number, period_number, score in grades_result.all():
        grades_by_subject.setdefault(subject_id, []).append((semester_number, period_number, score))

    averages_result = await db.execute(
        select(
            StudentAverage.subject_id,
            Semester.semester_number,
            StudentAverage.semester_average,
            StudentAverage.yearly_average,
            StudentAverage.grade_status,
        )
        .outerjoin(Semester, StudentAverage.semester_id == Semester.id)
        .where(
            StudentAverage.student_id == student.id,
            StudentAverage.academic_year_id == academic_year.id,
        )
    )
    averages_by_subject: Dict[int, list] = {}
    for subject_id, semester_number, sem_avg, year_avg, status in averages_result.all():
        averages_by_subject.setdefault(subject_id, []).append((semester_number, sem_avg, year_avg, status))

    rows = [
        build_subject_row(
            subject,
            grades_by_subject.get(subject.id, []),
            averages_by_subject.get(subject.id, []),
        )
        for subject in subjects
    ]

    logger.info(
        f"Assembled report card for student {student.id}, academic year {academic_year.id} "
        f"with {len(rows)} subjects [user_id: {caller.id}]"
    )

    return ReportCardData(
        student=ReportStudentInfo(
            id=student.id,
            student_number=student.student_number,
            first_name=student.first_name,
            last_name=student.last_name,
            gender=student.gender,
            class_id=class_.id if class_ else None,
            class_name=class_.name if class_ else None,
        ),
        school=ReportSchoolInfo(
            id=school.id,
            name=school.name,
            address=school.address,
            phone=school.phone,
            email=school.email,
        ),
        academic_year=ReportAcademicYearInfo(
            id=academic_year.id,
            year_name=academic_year.year_name,
            start_date=academic_year.start_date,
            end_date=academic_year.end_date,
            is_current=academic_year.is_current,
        ),
        subjects=rows,
        period_averages=column_averages(rows),
    )
