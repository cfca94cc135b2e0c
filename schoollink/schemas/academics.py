from datetime import date
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator


# Academic Year schemas
class AcademicYearBase(BaseModel):
    year_name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator('year_name')
    @classmethod
    def strip_year_name(cls, v):
        return v.strip() if v else v


class AcademicYearCreate(AcademicYearBase):
    school_id: Optional[int] = None
    is_current: bool = False


class AcademicYearInDB(BaseModel):
    id: int
    school_id: int
    year_name: str
    start_date: date
    end_date: date
    is_current: bool

    model_config = ConfigDict(from_attributes=True)


class AcademicYearSummary(AcademicYearInDB):
    semester_count: int = 0


# Assessment Period schemas
class AssessmentPeriodInDB(BaseModel):
    id: int
    semester_id: int
    period_number: int
    period_name: str
    period_type: str
    start_date: date
    end_date: date
    weight_percentage: float
    is_locked: bool

    model_config = ConfigDict(from_attributes=True)


class PeriodLockUpdate(BaseModel):
    is_locked: bool


# Semester schemas
class SemesterInDB(BaseModel):
    id: int
    academic_year_id: int
    semester_number: int
    semester_name: str
    start_date: date
    end_date: date
    is_current: bool

    model_config = ConfigDict(from_attributes=True)


class SemesterDetail(SemesterInDB):
    periods: List[AssessmentPeriodInDB] = []


class AcademicYearDetail(AcademicYearInDB):
    semesters: List[SemesterDetail] = []


# Grading configuration schemas
class GradingConfigBase(BaseModel):
    pass_mark: float = 70.0
    use_custom_weights: bool = False
    period_weight: float = 25.0
    exam_weight: float = 25.0
    semester_calculation: str = "average"
    year_calculation: str = "average"


class GradingConfigUpdate(BaseModel):
    school_id: Optional[int] = None
    pass_mark: Optional[float] = Field(None, ge=0, le=100)
    use_custom_weights: Optional[bool] = None
    period_weight: Optional[float] = Field(None, ge=0, le=100)
    exam_weight: Optional[float] = Field(None, ge=0, le=100)
    semester_calculation: Optional[str] = None
    year_calculation: Optional[str] = None


class GradingConfigInDB(GradingConfigBase):
    school_id: int

    model_config = ConfigDict(from_attributes=True)
