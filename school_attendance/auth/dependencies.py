from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.auth.models import User
from school_attendance.auth.schemas import CurrentUser
from school_attendance.core.config import settings
from school_attendance.core.enums import UserRole
from school_attendance.core.scopes import ScopedQuery, scope_for
from school_attendance.db.session import get_db


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login-oauth")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the authenticated user from the access token. Role is always taken from the DB row."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise credentials_exception

    user_id_str = payload.get("user_id") or payload.get("sub")
    if not user_id_str:
        raise credentials_exception
    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise credentials_exception

    user = await db.get(User, user_id)
    if not user:
        raise credentials_exception

    return CurrentUser(
        id=user.id,
        name=user.name,
        email=user.email,
        role=UserRole(user.role),
    )


async def get_scope(current_user: CurrentUser = Depends(get_current_user)) -> ScopedQuery:
    """Role-scoped query view for the caller, selected once per request."""
    return scope_for(current_user)
