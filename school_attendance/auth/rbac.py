from fastapi import Depends, HTTPException, status

from school_attendance.auth.dependencies import get_current_user
from school_attendance.auth.schemas import CurrentUser
from school_attendance.core.enums import UserRole


def require_roles(*roles: UserRole, detail: str = "Insufficient permissions"):
    """
    Dependency factory that lets only the given roles through.

    Example:
        Depends(require_roles(UserRole.ADMIN, UserRole.TEACHER))
    """
    allowed = {r.value for r in roles}

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role.value not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return current_user

    return _checker


require_admin = require_roles(UserRole.ADMIN, detail="Only administrators can perform this action")
require_staff = require_roles(
    UserRole.ADMIN, UserRole.TEACHER, detail="Only teachers and administrators can perform this action"
)
require_student = require_roles(UserRole.STUDENT, detail="Only students can perform this action")
