from datetime import date

import pytest

from schoollink.exceptions import NotFoundError
from schoollink.models import Class, ClassSubject, Student, StudentAverage, StudentEnrollment, Subject
from schoollink.services.calendar import create_academic_year
from schoollink.services.grades import enter_grade
from schoollink.services.report_cards import (
    assemble_report_card, build_subject_row, column_averages, score_color, REPORT_COLUMNS,
)


def _subject(id=1, name="Mathematics", code="MTH", is_core=True):
    return Subject(id=id, school_id=1, name=name, code=code, is_core=is_core)


def test_score_color():
    assert score_color(70) == "pass"
    assert score_color(100) == "pass"
    assert score_color(69.99) == "fail"
    assert score_color(0) == "fail"
    assert score_color(None) == "neutral"


def test_build_row_places_periods_and_exams():
    row = build_subject_row(
        _subject(),
        [(1, 1, 81.0), (1, 4, 90.0), (2, 1, 72.0), (2, 3, 66.0), (2, 4, 58.0)],
        [],
    )
    assert row.period1 == 81.0
    assert row.sem1_exam == 90.0
    assert row.period4 == 72.0
    assert row.period6 == 66.0
    assert row.sem2_exam == 58.0
    assert row.period2 is None
    assert row.sem1_average is None
    assert row.grade_status is None


def test_zero_score_is_kept():
    row = build_subject_row(_subject(), [(1, 1, 0.0)], [(1, 0.0, None, "fail")])
    assert row.period1 == 0.0
    assert row.sem1_average == 0.0

    averages = column_averages([row])
    assert averages.period1 == 0.0


def test_semester_averages_paired_by_number():
    # Semester 2 arrives first; it must still land in the semester 2 column
    row = build_subject_row(
        _subject(),
        [],
        [(2, 65.0, None, "fail"), (None, None, 70.0, "pass"), (1, 75.0, None, "pass")],
    )
    assert row.sem1_average == 75.0
    assert row.sem2_average == 65.0
    assert row.yearly_average == 70.0
    assert row.grade_status == "pass"


def test_column_averages_skip_missing_values():
    rows = [
        build_subject_row(_subject(1), [(1, 1, 80.0), (1, 2, 60.0)], []),
        build_subject_row(_subject(2, "English", "ENG"), [(1, 1, 70.0)], []),
        build_subject_row(_subject(3, "Art", "ART", False), [], []),
    ]
    averages = column_averages(rows)
    assert averages.period1 == 75.0
    assert averages.period2 == 60.0
    assert averages.yearly_average is None


def test_column_averages_of_no_subjects():
    averages = column_averages([])
    assert all(getattr(averages, column) is None for column in REPORT_COLUMNS)


async def test_single_subject_single_score(db, admin, school, academic_year, periods):
    class_ = Class(school_id=school.id, name="Grade 9B")
    subject = Subject(school_id=school.id, name="Chemistry", code="CHM", is_core=True)
    student = Student(school_id=school.id, student_number="STU-900", first_name="Kofi", last_name="Mensah")
    db.add_all([class_, subject, student])
    await db.flush()
    db.add_all([
        ClassSubject(class_id=class_.id, subject_id=subject.id),
        StudentEnrollment(student_id=student.id, class_id=class_.id, academic_year_id=academic_year.id),
    ])
    await db.commit()

    await enter_grade(
        db, admin,
        student_id=student.id, class_id=class_.id, subject_id=subject.id,
        assessment_period_id=periods[(1, 1)], score=85,
    )

    report = await assemble_report_card(db, admin, student_id=student.id, academic_year_id=academic_year.id)

    assert report.student.class_name == "Grade 9B"
    assert len(report.subjects) == 1
    row = report.subjects[0]
    assert row.period1 == 85.0
    assert all(getattr(row, column) is None for column in REPORT_COLUMNS if column != "period1")
    assert report.period_averages.period1 == 85.0
    assert all(
        getattr(report.period_averages, column) is None for column in REPORT_COLUMNS if column != "period1"
    )


async def test_full_year_report_card(db, admin, school, student, subjects, academic_year, record_scores):
    await record_scores(subjects["math"], 1, [80, 90, 70, 60])
    await record_scores(subjects["math"], 2, [60, 70, 65, 65])
    await record_scores(subjects["english"], 1, [50, 60, 70, 60])

    report = await assemble_report_card(db, admin, student_id=student.id, academic_year_id=academic_year.id)

    assert report.school.name == school.name
    assert report.academic_year.year_name == "2025-2026"
    assert report.student.student_number == "STU-001"
    assert report.student.class_name == "Grade 7A"

    # Core subjects first, then by name
    assert [row.subject_code for row in report.subjects] == ["ENG", "MTH", "ART"]

    english, math, art = report.subjects
    assert (math.period1, math.period2, math.period3, math.sem1_exam) == (80.0, 90.0, 70.0, 60.0)
    assert (math.period4, math.period5, math.period6, math.sem2_exam) == (60.0, 70.0, 65.0, 65.0)
    assert (math.sem1_average, math.sem2_average, math.yearly_average) == (75.0, 65.0, 70.0)
    assert math.grade_status == "pass"

    assert english.sem1_average == 60.0
    assert english.sem2_average is None
    assert english.yearly_average is None

    assert all(getattr(art, column) is None for column in REPORT_COLUMNS)

    assert report.period_averages.period1 == 65.0
    assert report.period_averages.sem1_average == 67.5
    assert report.period_averages.sem2_average == 65.0
    assert report.period_averages.yearly_average == 70.0


async def test_stored_semester_two_first_still_pairs_by_number(db, school, admin, student, subjects, academic_year):
    sem1, sem2 = academic_year.semesters
    math = subjects["math"]
    db.add_all([
        StudentAverage(
            student_id=student.id, subject_id=math.id, academic_year_id=academic_year.id,
            school_id=school.id, semester_id=sem2.id, semester_average=88.0, grade_status="pass",
        ),
        StudentAverage(
            student_id=student.id, subject_id=math.id, academic_year_id=academic_year.id,
            school_id=school.id, semester_id=sem1.id, semester_average=62.0, grade_status="fail",
        ),
    ])
    await db.commit()

    report = await assemble_report_card(db, admin, student_id=student.id, academic_year_id=academic_year.id)
    row = next(r for r in report.subjects if r.subject_code == "MTH")
    assert row.sem1_average == 62.0
    assert row.sem2_average == 88.0


async def test_student_without_enrollment_has_no_subjects(db, admin, school, academic_year):
    loner = Student(school_id=school.id, student_number="STU-404", first_name="Ada", last_name="Cole")
    db.add(loner)
    await db.commit()

    report = await assemble_report_card(db, admin, student_id=loner.id, academic_year_id=academic_year.id)
    assert report.subjects == []
    assert report.student.class_name is None
    assert report.period_averages.period1 is None


async def test_report_card_scoped_to_callers_school(db, other_admin, super_admin, student, academic_year):
    with pytest.raises(NotFoundError):
        await assemble_report_card(db, other_admin, student_id=student.id, academic_year_id=academic_year.id)

    report = await assemble_report_card(db, super_admin, student_id=student.id, academic_year_id=academic_year.id)
    assert report.student.id == student.id


async def test_report_card_unknown_or_foreign_year(db, admin, super_admin, other_school, student, academic_year):
    with pytest.raises(NotFoundError):
        await assemble_report_card(db, admin, student_id=student.id, academic_year_id=9999)

    foreign_year = await create_academic_year(
        db, super_admin, school_id=other_school.id, year_name="2025-2026",
        start_date=date(2025, 9, 1), end_date=date(2026, 6, 30),
    )
    with pytest.raises(NotFoundError):
        await assemble_report_card(db, admin, student_id=student.id, academic_year_id=foreign_year.id)
