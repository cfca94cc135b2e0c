from sqlalchemy import (
    Column, Integer, String, Date, DateTime, ForeignKey, Numeric, Boolean,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from schoollink.database import Base

# Academic Year model
class AcademicYear(Base):
    __tablename__ = "academic_years"

    id = Column(Integer, primary_key=True, index=True)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)
    year_name = Column(String(50), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("school_id", "year_name", name="uq_academic_year_school_name"),
    )

    # Relationships
    school = relationship("School", back_populates="academic_years")
    semesters = relationship("Semester", back_populates="academic_year", order_by="Semester.semester_number")

# Semester model
class Semester(Base):
    __tablename__ = "semesters"

    id = Column(Integer, primary_key=True, index=True)
    academic_year_id = Column(Integer, ForeignKey("academic_years.id", ondelete="CASCADE"), nullable=False)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)
    semester_number = Column(Integer, nullable=False)
    semester_name = Column(String(50), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("semester_number IN (1, 2)", name="check_semester_number"),
        UniqueConstraint("academic_year_id", "semester_number", name="uq_semester_year_number"),
    )

    # Relationships
    academic_year = relationship("AcademicYear", back_populates="semesters")
    periods = relationship("AssessmentPeriod", back_populates="semester", order_by="AssessmentPeriod.period_number")

# Assessment Period model: periods 1-3 are regular periods, 4 is the exam
class AssessmentPeriod(Base):
    __tablename__ = "assessment_periods"

    id = Column(Integer, primary_key=True, index=True)
    semester_id = Column(Integer, ForeignKey("semesters.id", ondelete="CASCADE"), nullable=False)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)
    period_number = Column(Integer, nullable=False)
    period_name = Column(String(50), nullable=False)
    period_type = Column(String(10), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    weight_percentage = Column(Numeric(5, 2, asdecimal=False), default=25.0, nullable=False)
    is_locked = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("period_number BETWEEN 1 AND 4", name="check_period_number"),
        CheckConstraint("period_type IN ('period', 'exam')", name="check_period_type"),
        UniqueConstraint("semester_id", "period_number", name="uq_period_semester_number"),
    )

    # Relationships
    semester = relationship("Semester", back_populates="periods")
    grades = relationship("StudentGrade", back_populates="assessment_period")

# Per-school grading configuration
class GradingConfig(Base):
    __tablename__ = "grading_config"

    id = Column(Integer, primary_key=True, index=True)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="CASCADE"), unique=True, nullable=False)
    pass_mark = Column(Numeric(5, 2, asdecimal=False), default=70.0, nullable=False)
    use_custom_weights = Column(Boolean, default=False, nullable=False)
    period_weight = Column(Numeric(5, 2, asdecimal=False), default=25.0, nullable=False)
    exam_weight = Column(Numeric(5, 2, asdecimal=False), default=25.0, nullable=False)
    semester_calculation = Column(String(20), default="average", nullable=False)
    year_calculation = Column(String(20), default="average", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

# Student Grade model: one score per student, subject and assessment period
class StudentGrade(Base):
    __tablename__ = "student_grades"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    class_id = Column(Integer, ForeignKey("classes.id"))
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)
    assessment_period_id = Column(Integer, ForeignKey("assessment_periods.id", ondelete="CASCADE"), nullable=False)
    academic_year_id = Column(Integer, ForeignKey("academic_years.id", ondelete="CASCADE"), nullable=False)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)
    score = Column(Numeric(5, 2, asdecimal=False))
    teacher_id = Column(Integer, ForeignKey("users.id"))
    entered_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("score >= 0 AND score <= 100", name="check_score_range"),
        UniqueConstraint("student_id", "subject_id", "assessment_period_id", name="uq_grade_student_subject_period"),
    )

    # Relationships
    student = relationship("Student", back_populates="grades")
    assessment_period = relationship("AssessmentPeriod", back_populates="grades")

# Student Average model: semester rows carry semester_id, the yearly row has none
class StudentAverage(Base):
    __tablename__ = "student_averages"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)
    academic_year_id = Column(Integer, ForeignKey("academic_years.id", ondelete="CASCADE"), nullable=False)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)
    semester_id = Column(Integer, ForeignKey("semesters.id", ondelete="CASCADE"))
    semester_average = Column(Numeric(5, 2, asdecimal=False))
    yearly_average = Column(Numeric(5, 2, asdecimal=False))
    grade_status = Column(String(10))
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("grade_status IN ('pass', 'fail')", name="check_grade_status"),
        UniqueConstraint("student_id", "subject_id", "academic_year_id", "semester_id", name="uq_average_student_subject_semester"),
    )

    # Relationships
    student = relationship("Student", back_populates="averages")
