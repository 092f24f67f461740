import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_attendance.auth.models import User
from school_attendance.auth.security import hash_password
from school_attendance.auth.services import email_taken
from school_attendance.core.enums import DayOfWeek, UserRole
from school_attendance.core.exceptions import ConflictError, NotFoundError, ServiceError
from school_attendance.core.models import ClassEnrollment, LeaveRequest, Schedule
from school_attendance.core.pagination import paginate
from school_attendance.core.schemas import Page
from school_attendance.core.storage import EvidenceStorage

from school_attendance.api.v1.classes.service import sync_student_classes
from school_attendance.api.v1.schedules.schemas import format_time_24

from .schemas import UserClassItem, UserCreate, UserDetailResponse, UserResponse, UserScheduleItem, UserUpdate

logger = logging.getLogger(__name__)


def _user_to_response(u: User, response_cls=UserResponse, **extra) -> UserResponse:
    return response_cls(
        id=u.id,
        name=u.name,
        email=u.email,
        role=UserRole(u.role),
        student_number=u.student_number,
        phone=u.phone,
        address=u.address,
        created_at=u.created_at,
        updated_at=u.updated_at,
        **extra,
    )


async def _student_number_taken(db: AsyncSession, number: str, exclude_user_id: Optional[UUID] = None) -> bool:
    stmt = select(User.id).where(User.student_number == number)
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


async def _check_unique(db: AsyncSession, email: str, student_number: Optional[str], exclude_user_id=None) -> None:
    if await email_taken(db, email, exclude_user_id=exclude_user_id):
        raise ConflictError("Email is already in use", field="email")
    if student_number and await _student_number_taken(db, student_number, exclude_user_id):
        raise ConflictError("Student number is already in use", field="student_number")


async def _admin_count(db: AsyncSession) -> int:
    return (
        await db.execute(select(func.count(User.id)).where(User.role == UserRole.ADMIN.value))
    ).scalar_one()


async def _teaches_active_schedules(db: AsyncSession, teacher_id: UUID) -> bool:
    stmt = select(Schedule.id).where(Schedule.teacher_id == teacher_id, Schedule.is_active.is_(True))
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


async def list_users(
    db: AsyncSession,
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    page: int = 1,
    per_page: int = 15,
) -> Page[UserResponse]:
    stmt = select(User)
    if role is not None:
        stmt = stmt.where(User.role == role.value)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(User.name.ilike(like), User.email.ilike(like), User.student_number.ilike(like))
        )
    stmt = stmt.order_by(User.created_at.desc(), User.name)
    rows, total = await paginate(db, stmt, page, per_page)
    return Page.build([_user_to_response(u) for u in rows], total, page, per_page)


async def create_user(db: AsyncSession, payload: UserCreate) -> UserDetailResponse:
    student_number = payload.student_number or None
    await _check_unique(db, payload.email, student_number)

    user = User(
        name=payload.name.strip(),
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=payload.role.value,
        student_number=student_number,
        phone=payload.phone,
        address=payload.address,
    )
    db.add(user)
    try:
        await db.flush()
        if payload.role == UserRole.STUDENT and payload.class_ids:
            await sync_student_classes(db, user.id, payload.class_ids)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Email or student number is already in use") from e
    except Exception:
        await db.rollback()
        raise
    logger.info("User %s created with role %s", user.id, user.role)
    return await get_user(db, user.id)


async def get_user(db: AsyncSession, user_id: UUID) -> UserDetailResponse:
    result = await db.execute(
        select(User)
        .options(
            selectinload(User.enrollments).selectinload(ClassEnrollment.school_class),
            selectinload(User.teaching_schedules).selectinload(Schedule.school_class),
            selectinload(User.teaching_schedules).selectinload(Schedule.subject),
        )
        .where(User.id == user_id)
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User not found")

    classes: List[UserClassItem] = sorted(
        (
            UserClassItem(
                id=e.school_class.id,
                name=e.school_class.name,
                grade=e.school_class.grade,
                enrolled_at=e.enrolled_at,
                is_active=e.is_active,
            )
            for e in user.enrollments
        ),
        key=lambda c: c.name,
    )
    schedules = [
        UserScheduleItem(
            id=s.id,
            class_name=s.school_class.name,
            subject_name=s.subject.name,
            day_of_week=s.day_of_week,
            start_time=format_time_24(s.start_time),
            end_time=format_time_24(s.end_time),
            room=s.room,
            is_active=s.is_active,
        )
        for s in sorted(user.teaching_schedules, key=_schedule_sort_key)
    ]
    return _user_to_response(user, UserDetailResponse, classes=classes, teaching_schedules=schedules)


def _schedule_sort_key(s: Schedule):
    return (DayOfWeek(s.day_of_week).order, s.start_time)


async def update_user(db: AsyncSession, user_id: UUID, payload: UserUpdate) -> UserDetailResponse:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    student_number = payload.student_number or None
    await _check_unique(db, payload.email, student_number, exclude_user_id=user_id)

    if user.role == UserRole.ADMIN.value and payload.role != UserRole.ADMIN and await _admin_count(db) <= 1:
        logger.warning("Refused to demote the last admin %s", user_id)
        raise ConflictError("Cannot change the role of the last admin", field="role")
    if (
        user.role == UserRole.TEACHER.value
        and payload.role != UserRole.TEACHER
        and await _teaches_active_schedules(db, user_id)
    ):
        logger.warning("Refused to change the role of teacher %s with active schedules", user_id)
        raise ConflictError("Reassign this teacher's schedules first", field="role")

    user.name = payload.name.strip()
    user.email = payload.email
    user.role = payload.role.value
    user.student_number = student_number
    user.phone = payload.phone
    user.address = payload.address
    if payload.password:
        user.password_hash = hash_password(payload.password)

    try:
        if payload.role == UserRole.STUDENT:
            await sync_student_classes(db, user_id, payload.class_ids or [])
        else:
            await sync_student_classes(db, user_id, [])
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Email or student number is already in use") from e
    except Exception:
        await db.rollback()
        raise
    logger.info("User %s updated", user_id)
    return await get_user(db, user_id)


async def delete_user(db: AsyncSession, storage: EvidenceStorage, user_id: UUID) -> bool:
    """
    Delete a user and everything that cascades from it.

    Leave requests go with the row, so their evidence files are removed from
    the store first. A file that cannot be deleted aborts with the user kept.
    """
    user = await db.get(User, user_id)
    if not user:
        return False
    if user.role == UserRole.ADMIN.value and await _admin_count(db) <= 1:
        logger.warning("Refused to delete the last admin %s", user_id)
        raise ConflictError("Cannot delete the last admin")

    evidence = (
        await db.execute(
            select(LeaveRequest.evidence_file).where(
                LeaveRequest.student_id == user_id, LeaveRequest.evidence_file.is_not(None)
            )
        )
    ).scalars().all()
    for path in evidence:
        try:
            removed = storage.delete(path)
        except OSError as e:
            logger.error("Failed to delete evidence file %s", path, exc_info=True)
            raise ServiceError("Could not delete evidence file; user kept") from e
        if not removed:
            logger.info("Evidence file %s already gone", path)

    await db.delete(user)
    await db.commit()
    logger.info("User %s deleted", user_id)
    return True
