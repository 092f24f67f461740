from typing import Dict, Optional, Union

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        field: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.field = field

    @property
    def detail(self) -> Union[str, Dict[str, str]]:
        """HTTP detail: plain message, or field + message for field-level errors."""
        if self.field:
            return {"field": self.field, "message": self.message}
        return self.message


class AuthorizationError(ServiceError):
    """Caller's role or ownership does not permit the operation."""

    def __init__(self, message: str = "You are not allowed to perform this action", field: Optional[str] = None) -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN, field)


class ValidationError(ServiceError):
    """Malformed or constraint-violating input, raised before any write."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, field)


class ConflictError(ServiceError):
    """Domain invariant violated at write time (duplicate key, invalid transition, entity in use)."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        status_code: int = status.HTTP_409_CONFLICT,
    ) -> None:
        super().__init__(message, status_code, field)


class ScheduleConflictError(ConflictError):
    """Teacher already has an active lesson overlapping the requested slot. Reported on teacher_id."""

    def __init__(
        self,
        message: str = "Teacher has a conflicting schedule at this time. Choose another time or teacher.",
    ) -> None:
        super().__init__(message, field="teacher_id", status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


class NotFoundError(ServiceError):
    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND, field)
