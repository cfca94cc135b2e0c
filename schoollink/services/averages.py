"""
Semester and yearly averages derived from the grade ledger.

Averages are never edited by hand. They are recomputed from StudentGrade rows
after every grade write, inside the same transaction as the write.

The read-then-upsert sequence takes no row lock: two concurrent writes for the
same student and subject can leave an average computed from a stale read.
"""
import logging
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from schoollink.config import settings
from schoollink.models.academics import AssessmentPeriod, StudentAverage, StudentGrade

logger = logging.getLogger(__name__)

# 3 periods + 1 exam
SEMESTER_SCORE_COUNT = 4
SEMESTERS_PER_YEAR = 2

PASS = "pass"
FAIL = "fail"


def grade_status(value: float) -> str:
    return PASS if value >= settings.PASS_MARK else FAIL


def semester_average(scores: Sequence[float]) -> Optional[float]:
    """
    Average of a semester's period scores, or None until every period is scored.

    The divisor is always 4, even if more than four scores are present.
    """
    if len(scores) < SEMESTER_SCORE_COUNT:
        return None
    return sum(float(score) for score in scores) / SEMESTER_SCORE_COUNT


def yearly_average(semester_averages: Sequence[float]) -> Optional[float]:
    if len(semester_averages) != SEMESTERS_PER_YEAR:
        return None
    return sum(float(avg) for avg in semester_averages) / SEMESTERS_PER_YEAR


async def recompute_averages(
    db: AsyncSession,
    *,
    student_id: int,
    subject_id: int,
    academic_year_id: int,
    semester_id: int,
    school_id: int,
) -> None:
    """
    Recompute the semester and yearly averages of one student and subject.

    Runs inside the caller's transaction and never commits. Re-running it on
    unchanged grades rewrites the same values in place.
    """
    scores_result = await db.execute(
        select(StudentGrade.score)
        .join(AssessmentPeriod, StudentGrade.assessment_period_id == AssessmentPeriod.id)
        .where(
            StudentGrade.student_id == student_id,
            StudentGrade.subject_id == subject_id,
            AssessmentPeriod.semester_id == semester_id,
            StudentGrade.score.is_not(None),
        )
    )
    scores = scores_result.scalars().all()

    sem_avg = semester_average(scores)
    if sem_avg is not None:
        result = await db.execute(
            select(StudentAverage).where(
                StudentAverage.student_id == student_id,
                StudentAverage.subject_id == subject_id,
                StudentAverage.academic_year_id == academic_year_id,
                StudentAverage.semester_id == semester_id,
            )
        )
        record = result.scalars().first()
        if record:
            record.semester_average = sem_avg
            record.grade_status = grade_status(sem_avg)
        else:
            db.add(StudentAverage(
                student_id=student_id,
                subject_id=subject_id,
                academic_year_id=academic_year_id,
                school_id=school_id,
                semester_id=semester_id,
                semester_average=sem_avg,
                grade_status=grade_status(sem_avg),
            ))
        await db.flush()
        logger.debug(f"Semester average for student {student_id}, subject {subject_id}, semester {semester_id}: {sem_avg}")

    semester_result = await db.execute(
        select(StudentAverage.semester_average).where(
            StudentAverage.student_id == student_id,
            StudentAverage.subject_id == subject_id,
            StudentAverage.academic_year_id == academic_year_id,
            StudentAverage.semester_id.is_not(None),
            StudentAverage.semester_average.is_not(None),
        )
    )
    year_avg = yearly_average(semester_result.scalars().all())
    if year_avg is None:
        return

    result = await db.execute(
        select(StudentAverage).where(
            StudentAverage.student_id == student_id,
            StudentAverage.subject_id == subject_id,
            StudentAverage.academic_year_id == academic_year_id,
            StudentAverage.semester_id.is_(None),
        )
    )
    yearly_record = result.scalars().first()
    if yearly_record:
        yearly_record.yearly_average = year_avg
        yearly_record.grade_status = grade_status(year_avg)
    else:
        db.add(StudentAverage(
            student_id=student_id,
            subject_id=subject_id,
            academic_year_id=academic_year_id,
            school_id=school_id,
            yearly_average=year_avg,
            grade_status=grade_status(year_avg),
        ))
    await db.flush()
    logger.debug(f"Yearly average for student {student_id}, subject {subject_id}, year {academic_year_id}: {year_avg}")
