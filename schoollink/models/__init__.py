# Import all models to ensure they're registered with SQLAlchemy
from schoollink.database import Base
from schoollink.models.users import User, UserRole, Student, StudentEnrollment, EnrollmentStatus
from schoollink.models.schools import School, Class, Subject, ClassSubject
from schoollink.models.academics import (
    AcademicYear, Semester, AssessmentPeriod, GradingConfig, StudentGrade, StudentAverage,
)
