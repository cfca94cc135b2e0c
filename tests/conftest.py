import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from schoollink.database import Base
from schoollink.models import (
    School, User, UserRole, Student, StudentEnrollment, Class, Subject, ClassSubject,
)
from schoollink.services.calendar import create_academic_year
from schoollink.services.grades import enter_grade


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def school(db):
    school = School(
        name="Greenfield Academy",
        address="12 Harbour Road, Monrovia",
        phone="+231 555 0100",
        email="office@greenfield.example",
    )
    db.add(school)
    await db.commit()
    return school


@pytest.fixture
async def other_school(db):
    school = School(name="Riverside High", address="4 Mission Street")
    db.add(school)
    await db.commit()
    return school


async def _user(db, school_id, role, name, email):
    user = User(school_id=school_id, role=role.value, full_name=name, email=email, is_active=True)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def super_admin(db):
    return await _user(db, None, UserRole.SUPER_ADMIN, "Root Admin", "root@schoollink.example")


@pytest.fixture
async def admin(db, school):
    return await _user(db, school.id, UserRole.SCHOOL_ADMIN, "Grace Kollie", "admin@greenfield.example")


@pytest.fixture
async def other_admin(db, other_school):
    return await _user(db, other_school.id, UserRole.SCHOOL_ADMIN, "Peter Dunbar", "admin@riverside.example")


@pytest.fixture
async def teacher(db, school):
    return await _user(db, school.id, UserRole.TEACHER, "Musa Kamara", "musa@greenfield.example")


@pytest.fixture
async def parent(db, school):
    return await _user(db, school.id, UserRole.PARENT, "Ruth Okafor", "ruth@parents.example")


@pytest.fixture
async def classroom(db, school):
    class_ = Class(school_id=school.id, name="Grade 7A")
    db.add(class_)
    await db.commit()
    return class_


@pytest.fixture
async def subjects(db, school, classroom, teacher):
    math = Subject(school_id=school.id, name="Mathematics", code="MTH", is_core=True)
    english = Subject(school_id=school.id, name="English", code="ENG", is_core=True)
    art = Subject(school_id=school.id, name="Art", code="ART", is_core=False)
    db.add_all([math, english, art])
    await db.flush()
    db.add_all([
        ClassSubject(class_id=classroom.id, subject_id=math.id, teacher_id=teacher.id),
        ClassSubject(class_id=classroom.id, subject_id=english.id),
        ClassSubject(class_id=classroom.id, subject_id=art.id),
    ])
    await db.commit()
    return {"math": math, "english": english, "art": art}


@pytest.fixture
async def student(db, school, classroom):
    student = Student(
        school_id=school.id,
        student_number="STU-001",
        first_name="Amara",
        last_name="Okafor",
        gender="Female",
        date_of_birth=date(2012, 5, 4),
    )
    db.add(student)
    await db.flush()
    db.add(StudentEnrollment(student_id=student.id, class_id=classroom.id))
    await db.commit()
    return student


@pytest.fixture
async def academic_year(db, admin):
    return await create_academic_year(
        db,
        admin,
        year_name="2025-2026",
        start_date=date(2025, 9, 1),
        end_date=date(2026, 6, 30),
        is_current=True,
    )


@pytest.fixture
def periods(academic_year):
    """Period ids keyed by (semester_number, period_number)."""
    return {
        (semester.semester_number, period.period_number): period.id
        for semester in academic_year.semesters
        for period in semester.periods
    }


@pytest.fixture
def record_scores(db, admin, student, classroom, periods):
    """Enter a semester's scores in period order for the fixture student."""
    async def record(subject, semester_number, scores, caller=None):
        grades = []
        for period_number, score in enumerate(scores, start=1):
            grades.append(await enter_grade(
                db,
                caller or admin,
                student_id=student.id,
                class_id=classroom.id,
                subject_id=subject.id,
                assessment_period_id=periods[(semester_number, period_number)],
                score=score,
            ))
        return grades
    return record
