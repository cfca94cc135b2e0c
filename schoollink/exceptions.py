import re
from typing import Optional

from fastapi import status
from sqlalchemy.exc import IntegrityError


class SchoolLinkError(Exception):
    """
    Base class for errors reported back to the caller.

    Each subclass carries the HTTP status code the API layer answers with.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(SchoolLinkError):
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(SchoolLinkError):
    status_code = status.HTTP_409_CONFLICT


class NotFoundError(SchoolLinkError):
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(SchoolLinkError):
    status_code = status.HTTP_403_FORBIDDEN


class LockedPeriodError(SchoolLinkError):
    status_code = status.HTTP_400_BAD_REQUEST


# Integrity violations raised by the database
class DuplicateRecordError(ConflictError):
    pass


class RelatedRecordError(ValidationError):
    pass


class MissingFieldError(ValidationError):
    pass


UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NOT_NULL_VIOLATION = "23502"

_KEY_PATTERN = re.compile(r"Key \((.*?)\)=")
_SQLITE_COLUMN_PATTERN = re.compile(r"constraint failed: ([\w.]+)")


def _sqlstate(exc: IntegrityError) -> Optional[str]:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def translate_integrity_error(exc: IntegrityError) -> SchoolLinkError:
    """
    Map a database integrity error to the matching application error.

    PostgreSQL reports a SQLSTATE code; SQLite only reports a message, so both
    are checked.
    """
    code = _sqlstate(exc)
    text = str(exc.orig)
    lowered = text.lower()

    if code == UNIQUE_VIOLATION or "unique constraint" in lowered or "duplicate key" in lowered:
        match = _KEY_PATTERN.search(text) or _SQLITE_COLUMN_PATTERN.search(text)
        field = match.group(1) if match else "field"
        return DuplicateRecordError(f"A record with this {field} already exists.")

    if code == FOREIGN_KEY_VIOLATION or "foreign key" in lowered:
        return RelatedRecordError("Cannot complete operation. Related record not found.")

    if code == NOT_NULL_VIOLATION or "not null" in lowered or "not-null" in lowered:
        match = _SQLITE_COLUMN_PATTERN.search(text)
        field = match.group(1) if match else "field"
        return MissingFieldError(f"Required field '{field}' is missing.")

    return ValidationError("The operation violates a data integrity rule.")
