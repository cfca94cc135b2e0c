from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class GradeCreate(BaseModel):
    student_id: int
    class_id: Optional[int] = None
    subject_id: int
    assessment_period_id: int
    # Range is checked by the grade ledger so the caller gets a 400
    score: Optional[float] = None
    school_id: Optional[int] = None


class GradeInDB(BaseModel):
    id: int
    student_id: int
    class_id: Optional[int] = None
    subject_id: int
    assessment_period_id: int
    academic_year_id: int
    school_id: int
    score: Optional[float] = None
    teacher_id: Optional[int] = None
    entered_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ClassSubjectGradeRow(BaseModel):
    student_id: int
    student_number: str
    first_name: str
    last_name: str
    grade_id: Optional[int] = None
    score: Optional[float] = None
    entered_at: Optional[datetime] = None
    entered_by: Optional[str] = None


class StudentAverageRow(BaseModel):
    subject_id: int
    subject_name: str
    subject_code: str
    is_core: bool
    semester_number: Optional[int] = None
    semester_average: Optional[float] = None
    yearly_average: Optional[float] = None
    grade_status: Optional[str] = None
