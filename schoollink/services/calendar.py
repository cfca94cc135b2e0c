"""
Academic calendar: academic years, their two semesters and the four
assessment periods of each semester.

A year is split at its calendar midpoint. Each semester is split into three
regular periods of equal whole-day length followed by an exam period that
absorbs the remainder, so the four periods tile the semester exactly.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy import update, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from schoollink.config import settings
from schoollink.database import transaction
from schoollink.exceptions import ConflictError, NotFoundError, ValidationError
from schoollink.models.academics import AcademicYear, Semester, AssessmentPeriod, GradingConfig
from schoollink.models.users import User
from schoollink.schemas.academics import (
    AcademicYearDetail, AcademicYearInDB, AcademicYearSummary,
    SemesterDetail, SemesterInDB, AssessmentPeriodInDB, GradingConfigInDB,
)
from schoollink.services.authorization import (
    ADMIN_ROLES, ensure_school_access, require_roles, require_school, resolve_effective_school,
)

logger = logging.getLogger(__name__)

SEMESTERS_PER_YEAR = 2
PERIODS_PER_SEMESTER = 4
EXAM_PERIOD_NUMBER = 4

PERIOD_TYPE_REGULAR = "period"
PERIOD_TYPE_EXAM = "exam"

GRADING_CONFIG_FIELDS = (
    "pass_mark", "use_custom_weights", "period_weight", "exam_weight",
    "semester_calculation", "year_calculation",
)


@dataclass(frozen=True)
class PeriodPlan:
    period_number: int
    period_name: str
    period_type: str
    start_date: date
    end_date: date
    weight_percentage: float


@dataclass(frozen=True)
class SemesterPlan:
    semester_number: int
    semester_name: str
    start_date: date
    end_date: date
    periods: List[PeriodPlan] = field(default_factory=list)


def ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def period_display_name(semester_number: int, period_number: int) -> str:
    """
    Human readable period name.

    Display numbering runs across the whole year (semester 2 starts at the
    4th Period) while the stored period_number restarts at 1 every semester.
    """
    if period_number == EXAM_PERIOD_NUMBER:
        return f"Semester {semester_number} Exam"
    regular_per_semester = PERIODS_PER_SEMESTER - 1
    return f"{ordinal(period_number + (semester_number - 1) * regular_per_semester)} Period"


def plan_semester_periods(
    semester_number: int,
    start_date: date,
    end_date: date,
    weight: Optional[float] = None,
) -> List[PeriodPlan]:
    weight = settings.DEFAULT_PERIOD_WEIGHT if weight is None else weight
    total_days = (end_date - start_date).days
    period_length = total_days // PERIODS_PER_SEMESTER

    periods = []
    for number in range(1, PERIODS_PER_SEMESTER):
        period_start = start_date + timedelta(days=(number - 1) * period_length)
        period_end = start_date + timedelta(days=number * period_length - 1)
        periods.append(PeriodPlan(
            period_number=number,
            period_name=period_display_name(semester_number, number),
            period_type=PERIOD_TYPE_REGULAR,
            start_date=period_start,
            end_date=period_end,
            weight_percentage=weight,
        ))

    # The exam runs to the end of the semester and takes the leftover days
    periods.append(PeriodPlan(
        period_number=EXAM_PERIOD_NUMBER,
        period_name=period_display_name(semester_number, EXAM_PERIOD_NUMBER),
        period_type=PERIOD_TYPE_EXAM,
        start_date=start_date + timedelta(days=(PERIODS_PER_SEMESTER - 1) * period_length),
        end_date=end_date,
        weight_percentage=weight,
    ))
    return periods


def plan_academic_year(start_date: date, end_date: date) -> List[SemesterPlan]:
    midpoint = start_date + timedelta(days=(end_date - start_date).days // 2)
    bounds = [
        (1, start_date, midpoint),
        (2, midpoint + timedelta(days=1), end_date),
    ]
    return [
        SemesterPlan(
            semester_number=number,
            semester_name=f"Semester {number}",
            start_date=sem_start,
            end_date=sem_end,
            periods=plan_semester_periods(number, sem_start, sem_end),
        )
        for number, sem_start, sem_end in bounds
    ]


def _year_detail(year: AcademicYear, semesters: List[Semester], periods: List[AssessmentPeriod]) -> AcademicYearDetail:
    details = []
    for semester in sorted(semesters, key=lambda s: s.semester_number):
        semester_periods = sorted(
            (p for p in periods if p.semester_id == semester.id),
            key=lambda p: p.period_number,
        )
        details.append(SemesterDetail(
            **SemesterInDB.model_validate(semester).model_dump(),
            periods=[AssessmentPeriodInDB.model_validate(p) for p in semester_periods],
        ))
    return AcademicYearDetail(
        **AcademicYearInDB.model_validate(year).model_dump(),
        semesters=details,
    )


async def _get_year_or_404(db: AsyncSession, year_id: int) -> AcademicYear:
    result = await db.execute(
        select(AcademicYear)
        .where(AcademicYear.id == year_id)
        .execution_options(populate_existing=True)
    )
    year = result.scalars().first()
    if not year:
        raise NotFoundError("Academic year not found")
    return year


async def _load_year_detail(db: AsyncSession, year: AcademicYear) -> AcademicYearDetail:
    semesters_result = await db.execute(
        select(Semester)
        .where(Semester.academic_year_id == year.id)
        .execution_options(populate_existing=True)
    )
    semesters = semesters_result.scalars().all()

    periods_result = await db.execute(
        select(AssessmentPeriod)
        .where(AssessmentPeriod.semester_id.in_([s.id for s in semesters]))
        .execution_options(populate_existing=True)
    )
    return _year_detail(year, semesters, periods_result.scalars().all())


async def create_academic_year(
    db: AsyncSession,
    caller: User,
    *,
    year_name: Optional[str],
    start_date: Optional[date],
    end_date: Optional[date],
    school_id: Optional[int] = None,
    is_current: bool = False,
) -> AcademicYearDetail:
    """
    Create an academic year together with its semesters and periods.

    The year, both semesters and all eight periods are written in a single
    transaction. Marking the year current clears the flag on every other year
    of the school first.
    """
    require_roles(caller, ADMIN_ROLES, "You do not have permission to create academic years")

    final_school_id = resolve_effective_school(caller, school_id)
    if not final_school_id or not year_name or not start_date or not end_date:
        raise ValidationError("School ID, year name, start date, and end date are required")

    if start_date >= end_date:
        raise ValidationError("Start date must be before end date")

    existing = await db.execute(
        select(AcademicYear.id).where(
            AcademicYear.school_id == final_school_id,
            AcademicYear.year_name == year_name,
        )
    )
    if existing.scalars().first():
        raise ConflictError("An academic year with this name already exists")

    async with transaction(db, "create_academic_year"):
        if is_current:
            await db.execute(
                update(AcademicYear)
                .where(AcademicYear.school_id == final_school_id)
                .values(is_current=False)
            )

        year = AcademicYear(
            school_id=final_school_id,
            year_name=year_name,
            start_date=start_date,
            end_date=end_date,
            is_current=is_current,
        )
        db.add(year)
        await db.flush()

        semesters = []
        periods = []
        for plan in plan_academic_year(start_date, end_date):
            semester = Semester(
                academic_year_id=year.id,
                school_id=final_school_id,
                semester_number=plan.semester_number,
                semester_name=plan.semester_name,
                start_date=plan.start_date,
                end_date=plan.end_date,
                # Only the first semester of a current year starts out current
                is_current=is_current and plan.semester_number == 1,
            )
            db.add(semester)
            await db.flush()
            semesters.append(semester)

            for period_plan in plan.periods:
                period = AssessmentPeriod(
                    semester_id=semester.id,
                    school_id=final_school_id,
                    period_number=period_plan.period_number,
                    period_name=period_plan.period_name,
                    period_type=period_plan.period_type,
                    start_date=period_plan.start_date,
                    end_date=period_plan.end_date,
                    weight_percentage=period_plan.weight_percentage,
                    is_locked=False,
                )
                db.add(period)
                periods.append(period)
        await db.flush()

    logger.info(
        f"Created academic year '{year_name}' (id={year.id}) for school {final_school_id} "
        f"with {len(semesters)} semesters and {len(periods)} periods"
    )
    return _year_detail(year, semesters, periods)


async def list_academic_years(db: AsyncSession, caller: User, school_id: Optional[int] = None) -> List[AcademicYearSummary]:
    final_school_id = require_school(caller, school_id)

    semester_count = (
        select(func.count(Semester.id))
        .where(Semester.academic_year_id == AcademicYear.id)
        .correlate(AcademicYear)
        .scalar_subquery()
    )
    result = await db.execute(
        select(AcademicYear, semester_count.label("semester_count"))
        .where(AcademicYear.school_id == final_school_id)
        .order_by(AcademicYear.start_date.desc())
    )
    return [
        AcademicYearSummary(**AcademicYearInDB.model_validate(year).model_dump(), semester_count=count)
        for year, count in result.all()
    ]


async def get_academic_year(db: AsyncSession, caller: User, year_id: int) -> AcademicYearDetail:
    year = await _get_year_or_404(db, year_id)
    ensure_school_access(caller, year.school_id, "You do not have permission to access this academic year")
    return await _load_year_detail(db, year)


async def set_current_academic_year(db: AsyncSession, caller: User, year_id: int) -> AcademicYearDetail:
    """
    Make one academic year (and its first semester) the school's current one.

    Every year and semester of the same school is cleared first, in the same
    transaction. Other schools are never touched.
    """
    require_roles(caller, ADMIN_ROLES, "You do not have permission to modify academic years")
    year = await _get_year_or_404(db, year_id)
    ensure_school_access(caller, year.school_id, "You do not have permission to modify this academic year")

    async with transaction(db, "set_current_academic_year"):
        await db.execute(
            update(AcademicYear)
            .where(AcademicYear.school_id == year.school_id)
            .values(is_current=False)
        )
        await db.execute(
            update(Semester)
            .where(Semester.school_id == year.school_id)
            .values(is_current=False)
        )
        await db.execute(
            update(AcademicYear)
            .where(AcademicYear.id == year.id)
            .values(is_current=True)
        )
        await db.execute(
            update(Semester)
            .where(Semester.academic_year_id == year.id, Semester.semester_number == 1)
            .values(is_current=True)
        )

    logger.info(f"Academic year {year.id} is now current for school {year.school_id}")
    year = await _get_year_or_404(db, year_id)
    return await _load_year_detail(db, year)


async def set_current_semester(db: AsyncSession, caller: User, semester_id: int) -> SemesterInDB:
    """
    Make a semester the school's current one.

    The owning year's current flag is left as it is.
    """
    require_roles(caller, ADMIN_ROLES, "You do not have permission to modify semesters")
    result = await db.execute(select(Semester).where(Semester.id == semester_id))
    semester = result.scalars().first()
    if not semester:
        raise NotFoundError("Semester not found")
    ensure_school_access(caller, semester.school_id, "You do not have permission to modify this semester")

    async with transaction(db, "set_current_semester"):
        await db.execute(
            update(Semester)
            .where(Semester.school_id == semester.school_id)
            .values(is_current=False)
        )
        await db.execute(
            update(Semester)
            .where(Semester.id == semester.id)
            .values(is_current=True)
        )

    logger.info(f"Semester {semester.id} is now current for school {semester.school_id}")
    result = await db.execute(
        select(Semester).where(Semester.id == semester_id).execution_options(populate_existing=True)
    )
    return SemesterInDB.model_validate(result.scalars().first())


async def toggle_period_lock(db: AsyncSession, caller: User, period_id: int, is_locked: bool) -> AssessmentPeriodInDB:
    require_roles(caller, ADMIN_ROLES, "You do not have permission to lock/unlock periods")
    result = await db.execute(select(AssessmentPeriod).where(AssessmentPeriod.id == period_id))
    period = result.scalars().first()
    if not period:
        raise NotFoundError("Assessment period not found")
    ensure_school_access(caller, period.school_id, "You do not have permission to modify this period")

    async with transaction(db, "toggle_period_lock"):
        period.is_locked = is_locked

    logger.info(f"Assessment period {period.id} {'locked' if is_locked else 'unlocked'}")
    return AssessmentPeriodInDB.model_validate(period)


async def get_grading_config(db: AsyncSession, caller: User, school_id: Optional[int] = None) -> GradingConfigInDB:
    final_school_id = require_school(caller, school_id)
    result = await db.execute(select(GradingConfig).where(GradingConfig.school_id == final_school_id))
    config = result.scalars().first()
    if not config:
        return GradingConfigInDB(school_id=final_school_id, pass_mark=settings.PASS_MARK)
    return GradingConfigInDB.model_validate(config)


async def update_grading_config(db: AsyncSession, caller: User, school_id: Optional[int] = None, **changes) -> GradingConfigInDB:
    """
    Create or update a school's grading configuration.

    Only the fields passed in (and not None) are written; a new config takes
    the defaults for everything else.
    """
    require_roles(caller, ADMIN_ROLES, "You do not have permission to change the grading configuration")
    final_school_id = require_school(caller, school_id)

    updates = {key: value for key, value in changes.items() if key in GRADING_CONFIG_FIELDS and value is not None}

    result = await db.execute(select(GradingConfig).where(GradingConfig.school_id == final_school_id))
    config = result.scalars().first()

    async with transaction(db, "update_grading_config"):
        if config:
            if not updates:
                raise ValidationError("No fields to update")
            for key, value in updates.items():
                setattr(config, key, value)
        else:
            defaults = GradingConfigInDB(school_id=final_school_id, pass_mark=settings.PASS_MARK).model_dump()
            defaults.update(updates)
            config = GradingConfig(**defaults)
            db.add(config)
        await db.flush()

    logger.info(f"Grading configuration updated for school {final_school_id}")
    return GradingConfigInDB.model_validate(config)
