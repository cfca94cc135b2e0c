from datetime import date
from typing import Optional, List
from pydantic import BaseModel


class ReportStudentInfo(BaseModel):
    id: int
    student_number: str
    first_name: str
    last_name: str
    gender: Optional[str] = None
    class_id: Optional[int] = None
    class_name: Optional[str] = None


class ReportSchoolInfo(BaseModel):
    id: int
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class ReportAcademicYearInfo(BaseModel):
    id: int
    year_name: str
    start_date: date
    end_date: date
    is_current: bool


class ReportColumns(BaseModel):
    """The eleven score columns of a report card, in display order."""
    period1: Optional[float] = None
    period2: Optional[float] = None
    period3: Optional[float] = None
    sem1_exam: Optional[float] = None
    sem1_average: Optional[float] = None
    # Semester 2 periods continue the numbering: period4 is semester 2, period 1
    period4: Optional[float] = None
    period5: Optional[float] = None
    period6: Optional[float] = None
    sem2_exam: Optional[float] = None
    sem2_average: Optional[float] = None
    yearly_average: Optional[float] = None


class SubjectReportRow(ReportColumns):
    subject_id: int
    subject_name: str
    subject_code: str
    is_core: bool
    grade_status: Optional[str] = None


class ReportCardData(BaseModel):
    student: ReportStudentInfo
    school: ReportSchoolInfo
    academic_year: ReportAcademicYearInfo
    subjects: List[SubjectReportRow]
    period_averages: ReportColumns
