import pytest
from sqlalchemy import update
from sqlalchemy.future import select

from schoollink.models import StudentAverage, StudentGrade
from schoollink.services.averages import (
    grade_status, recompute_averages, semester_average, yearly_average,
)


async def _averages(db, student_id, subject_id):
    result = await db.execute(
        select(StudentAverage)
        .where(StudentAverage.student_id == student_id, StudentAverage.subject_id == subject_id)
        .execution_options(populate_existing=True)
    )
    rows = result.scalars().all()
    semester_rows = {row.semester_id: row for row in rows if row.semester_id is not None}
    yearly_rows = [row for row in rows if row.semester_id is None]
    return semester_rows, yearly_rows


def test_grade_status_uses_pass_mark():
    assert grade_status(70.0) == "pass"
    assert grade_status(69.99) == "fail"
    assert grade_status(100) == "pass"
    assert grade_status(0) == "fail"


def test_semester_average_needs_four_scores():
    assert semester_average([]) is None
    assert semester_average([80, 90, 70]) is None
    assert semester_average([80, 90, 70, 60]) == 75.0


def test_semester_average_always_divides_by_four():
    assert semester_average([80, 80, 80, 80, 80]) == 100.0


def test_yearly_average_needs_both_semesters():
    assert yearly_average([75.0]) is None
    assert yearly_average([75.0, 65.0]) == 70.0
    assert yearly_average([75.0, 65.0, 50.0]) is None


async def test_full_semester_creates_passing_average(db, student, subjects, academic_year, record_scores):
    math = subjects["math"]
    await record_scores(math, 1, [80, 90, 70, 60])

    semester_rows, yearly_rows = await _averages(db, student.id, math.id)
    sem1_id = academic_year.semesters[0].id

    assert list(semester_rows) == [sem1_id]
    assert semester_rows[sem1_id].semester_average == 75.0
    assert semester_rows[sem1_id].grade_status == "pass"
    assert semester_rows[sem1_id].yearly_average is None
    assert yearly_rows == []


async def test_failing_semester_average(db, student, subjects, academic_year, record_scores):
    english = subjects["english"]
    await record_scores(english, 1, [50, 60, 70, 60])

    semester_rows, _ = await _averages(db, student.id, english.id)
    row = semester_rows[academic_year.semesters[0].id]
    assert row.semester_average == 60.0
    assert row.grade_status == "fail"


async def test_incomplete_semester_has_no_average(db, student, subjects, record_scores):
    math = subjects["math"]
    await record_scores(math, 1, [80, 90, 70])

    semester_rows, yearly_rows = await _averages(db, student.id, math.id)
    assert semester_rows == {}
    assert yearly_rows == []


async def test_yearly_average_after_both_semesters(db, student, subjects, academic_year, record_scores):
    math = subjects["math"]
    await record_scores(math, 1, [80, 90, 70, 60])
    await record_scores(math, 2, [60, 70, 65, 65])

    semester_rows, yearly_rows = await _averages(db, student.id, math.id)
    sem1, sem2 = academic_year.semesters

    assert semester_rows[sem1.id].semester_average == 75.0
    assert semester_rows[sem2.id].semester_average == 65.0
    assert semester_rows[sem2.id].grade_status == "fail"
    assert len(yearly_rows) == 1
    assert yearly_rows[0].yearly_average == 70.0
    assert yearly_rows[0].grade_status == "pass"
    assert yearly_rows[0].semester_average is None


async def test_regrade_updates_averages_in_place(db, student, subjects, academic_year, record_scores):
    math = subjects["math"]
    await record_scores(math, 1, [80, 90, 70, 60])
    await record_scores(math, 2, [60, 70, 65, 65])

    # Raise the semester 2 exam from 65 to 85
    await record_scores(math, 2, [60, 70, 65, 85])

    semester_rows, yearly_rows = await _averages(db, student.id, math.id)
    assert semester_rows[academic_year.semesters[1].id].semester_average == 70.0
    assert semester_rows[academic_year.semesters[1].id].grade_status == "pass"
    assert len(semester_rows) == 2
    assert len(yearly_rows) == 1
    assert yearly_rows[0].yearly_average == 72.5


async def test_averages_are_per_subject(db, student, subjects, record_scores):
    await record_scores(subjects["math"], 1, [80, 90, 70, 60])

    semester_rows, _ = await _averages(db, student.id, subjects["english"].id)
    assert semester_rows == {}


async def test_recompute_is_idempotent(db, school, student, subjects, academic_year, record_scores):
    math = subjects["math"]
    await record_scores(math, 1, [80, 90, 70, 60])
    await record_scores(math, 2, [60, 70, 65, 65])

    for semester in academic_year.semesters:
        await recompute_averages(
            db,
            student_id=student.id,
            subject_id=math.id,
            academic_year_id=academic_year.id,
            semester_id=semester.id,
            school_id=school.id,
        )
        await recompute_averages(
            db,
            student_id=student.id,
            subject_id=math.id,
            academic_year_id=academic_year.id,
            semester_id=semester.id,
            school_id=school.id,
        )
    await db.commit()

    semester_rows, yearly_rows = await _averages(db, student.id, math.id)
    assert sorted(row.semester_average for row in semester_rows.values()) == [65.0, 75.0]
    assert len(yearly_rows) == 1
    assert yearly_rows[0].yearly_average == 70.0


async def test_recompute_ignores_other_semesters(db, school, student, subjects, academic_year, record_scores):
    math = subjects["math"]
    await record_scores(math, 1, [80, 90, 70, 60])

    await recompute_averages(
        db,
        student_id=student.id,
        subject_id=math.id,
        academic_year_id=academic_year.id,
        semester_id=academic_year.semesters[1].id,
        school_id=school.id,
    )
    await db.commit()

    grades = await db.execute(select(StudentGrade).where(StudentGrade.student_id == student.id))
    assert len(grades.scalars().all()) == 4
    semester_rows, _ = await _averages(db, student.id, math.id)
    assert list(semester_rows) == [academic_year.semesters[0].id]


async def test_unlocked_average_stays_stale_until_next_recompute(db, school, student, subjects, academic_year, periods, record_scores):
    """
    Averages are not row-locked: a grade committed after the aggregator's
    read leaves the stored average behind until some later recompute.
    """
    math = subjects["math"]
    sem1_id = academic_year.semesters[0].id
    await record_scores(math, 1, [80, 90, 70, 60])

    # A second writer's grade lands after the first recompute already read
    await db.execute(
        update(StudentGrade)
        .where(
            StudentGrade.student_id == student.id,
            StudentGrade.subject_id == math.id,
            StudentGrade.assessment_period_id == periods[(1, 4)],
        )
        .values(score=100)
    )
    await db.commit()

    semester_rows, _ = await _averages(db, student.id, math.id)
    assert semester_rows[sem1_id].semester_average == 75.0

    await recompute_averages(
        db,
        student_id=student.id,
        subject_id=math.id,
        academic_year_id=academic_year.id,
        semester_id=sem1_id,
        school_id=school.id,
    )
    await db.commit()

    # The last recompute wins
    semester_rows, _ = await _averages(db, student.id, math.id)
    assert semester_rows[sem1_id].semester_average == 85.0
    assert semester_rows[sem1_id].grade_status == "pass"


@pytest.mark.parametrize("scores, expected", [
    ([100, 100, 100, 100], 100.0),
    ([0, 0, 0, 0], 0.0),
    ([70, 70, 70, 70], 70.0),
])
def test_semester_average_bounds(scores, expected):
    assert semester_average(scores) == expected
