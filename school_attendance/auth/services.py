import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.auth.models import User
from school_attendance.auth.schemas import LoginRequest, LoginResponse, RegisterRequest, UserInfo
from school_attendance.auth.security import access_token_for, hash_password, verify_password
from school_attendance.core.enums import UserRole
from school_attendance.core.exceptions import ConflictError, ServiceError

logger = logging.getLogger(__name__)


def user_info(user: User) -> UserInfo:
    return UserInfo(
        id=user.id,
        name=user.name,
        email=user.email,
        role=UserRole(user.role),
        student_number=user.student_number,
    )


async def email_taken(db: AsyncSession, email: str, exclude_user_id=None) -> bool:
    stmt = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


async def register_student(db: AsyncSession, payload: RegisterRequest) -> LoginResponse:
    """Self-registration: creates a student and logs them in."""
    if await email_taken(db, payload.email):
        raise ConflictError("Email is already in use", field="email")

    user = User(
        name=payload.name.strip(),
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=UserRole.STUDENT.value,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Email is already in use", field="email") from e
    await db.refresh(user)
    logger.info("Student self-registered", extra={"user_id": str(user.id)})

    return LoginResponse(
        access_token=access_token_for(user.id, user.role),
        user=user_info(user),
        issued_at=datetime.now(timezone.utc),
    )


async def login_user(db: AsyncSession, payload: LoginRequest) -> LoginResponse:
    # Email match is case-insensitive
    user_stmt = select(User).where(func.lower(User.email) == func.lower(payload.email))
    user_result = await db.execute(user_stmt)
    user: Optional[User] = user_result.scalar_one_or_none()
    if not user or not verify_password(payload.password, user.password_hash):
        logger.warning("Failed login attempt", extra={"email": payload.email})
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    return LoginResponse(
        access_token=access_token_for(user.id, user.role),
        user=user_info(user),
        issued_at=datetime.now(timezone.utc),
    )
