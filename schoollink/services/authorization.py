from typing import Iterable, Optional

from schoollink.exceptions import ForbiddenError, ValidationError
from schoollink.models.users import User, UserRole

ADMIN_ROLES = (UserRole.SUPER_ADMIN, UserRole.SCHOOL_ADMIN)
GRADE_ENTRY_ROLES = (UserRole.SUPER_ADMIN, UserRole.SCHOOL_ADMIN, UserRole.TEACHER)


def is_super_admin(caller: User) -> bool:
    return caller.role == UserRole.SUPER_ADMIN


def resolve_effective_school(caller: User, requested_school_id: Optional[int] = None) -> Optional[int]:
    """
    Decide which school an operation runs against.

    Super admins may act on any school and name it explicitly; everyone else
    is pinned to their own school whatever they request.
    """
    if is_super_admin(caller):
        return requested_school_id
    return caller.school_id


def require_school(caller: User, requested_school_id: Optional[int] = None) -> int:
    school_id = resolve_effective_school(caller, requested_school_id)
    if not school_id:
        raise ValidationError("School ID is required")
    return school_id


def ensure_school_access(caller: User, school_id: int, detail: str = "You do not have access to this school") -> None:
    if not is_super_admin(caller) and caller.school_id != school_id:
        raise ForbiddenError(detail)


def require_roles(caller: User, roles: Iterable[UserRole], detail: str = "You do not have permission to perform this action") -> None:
    if caller.role not in [role.value for role in roles]:
        raise ForbiddenError(detail)
