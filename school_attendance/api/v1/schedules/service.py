"""Schedule registry: weekly lesson slots with teacher conflict detection."""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_attendance.auth.models import User
from school_attendance.core.enums import DayOfWeek, UserRole
from school_attendance.core.exceptions import ConflictError, NotFoundError, ScheduleConflictError, ValidationError
from school_attendance.core.models import ClassEnrollment, Schedule, SchoolClass, Subject, day_of_week_order
from school_attendance.core.pagination import paginate
from school_attendance.core.schemas import Page
from school_attendance.core.scopes import ScopedQuery

from .conflicts import find_conflicting_schedule
from .schemas import ScheduleCreate, ScheduleDetailResponse, ScheduleResponse, ScheduleStudentItem, ScheduleUpdate

logger = logging.getLogger(__name__)

_WITH_REFS = (
    selectinload(Schedule.school_class),
    selectinload(Schedule.subject),
    selectinload(Schedule.teacher),
)


def schedule_to_response(s: Schedule, response_cls=ScheduleResponse, **extra) -> ScheduleResponse:
    return response_cls(
        id=s.id,
        class_id=s.class_id,
        class_name=s.school_class.name if s.school_class else None,
        subject_id=s.subject_id,
        subject_name=s.subject.name if s.subject else None,
        subject_code=s.subject.code if s.subject else None,
        teacher_id=s.teacher_id,
        teacher_name=s.teacher.name if s.teacher else None,
        day_of_week=DayOfWeek(s.day_of_week),
        start_time=s.start_time,
        end_time=s.end_time,
        room=s.room,
        is_active=s.is_active,
        created_at=s.created_at,
        updated_at=s.updated_at,
        **extra,
    )


async def load_schedule(db: AsyncSession, schedule_id: UUID) -> Optional[Schedule]:
    result = await db.execute(
        select(Schedule)
        .options(*_WITH_REFS)
        .where(Schedule.id == schedule_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _validate_payload(db: AsyncSession, payload: ScheduleCreate) -> None:
    if payload.end_time <= payload.start_time:
        raise ValidationError("end_time must be after start_time", field="end_time")
    if not await db.get(SchoolClass, payload.class_id):
        raise ValidationError("Selected class does not exist", field="class_id")
    if not await db.get(Subject, payload.subject_id):
        raise ValidationError("Selected subject does not exist", field="subject_id")
    teacher = await db.get(User, payload.teacher_id)
    if not teacher:
        raise ValidationError("Selected teacher does not exist", field="teacher_id")
    if teacher.role != UserRole.TEACHER.value:
        raise ValidationError("Selected user is not a teacher", field="teacher_id")


async def _ensure_no_conflict(
    db: AsyncSession,
    payload: ScheduleCreate,
    exclude_schedule_id: Optional[UUID] = None,
) -> None:
    if not payload.is_active:
        return
    conflict = await find_conflicting_schedule(
        db,
        payload.teacher_id,
        payload.day_of_week,
        payload.start_time,
        payload.end_time,
        exclude_schedule_id=exclude_schedule_id,
    )
    if conflict:
        logger.warning(
            "Schedule conflict for teacher %s on %s (%s-%s overlaps schedule %s)",
            payload.teacher_id,
            payload.day_of_week.value,
            payload.start_time,
            payload.end_time,
            conflict.id,
        )
        raise ScheduleConflictError()


async def create_schedule(db: AsyncSession, payload: ScheduleCreate) -> ScheduleResponse:
    await _validate_payload(db, payload)
    await _ensure_no_conflict(db, payload)
    obj = Schedule(
        class_id=payload.class_id,
        subject_id=payload.subject_id,
        teacher_id=payload.teacher_id,
        day_of_week=payload.day_of_week.value,
        start_time=payload.start_time,
        end_time=payload.end_time,
        room=payload.room,
        is_active=payload.is_active,
    )
    db.add(obj)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Schedule creation failed")
    logger.info("Schedule %s created", obj.id)
    return schedule_to_response(await load_schedule(db, obj.id))


async def update_schedule(db: AsyncSession, schedule_id: UUID, payload: ScheduleUpdate) -> ScheduleResponse:
    obj = await db.get(Schedule, schedule_id)
    if not obj:
        raise NotFoundError("Schedule not found")
    await _validate_payload(db, payload)
    await _ensure_no_conflict(db, payload, exclude_schedule_id=schedule_id)
    obj.class_id = payload.class_id
    obj.subject_id = payload.subject_id
    obj.teacher_id = payload.teacher_id
    obj.day_of_week = payload.day_of_week.value
    obj.start_time = payload.start_time
    obj.end_time = payload.end_time
    obj.room = payload.room
    obj.is_active = payload.is_active
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Schedule update failed")
    logger.info("Schedule %s updated", schedule_id)
    return schedule_to_response(await load_schedule(db, schedule_id))


async def delete_schedule(db: AsyncSession, schedule_id: UUID) -> bool:
    obj = await db.get(Schedule, schedule_id)
    if not obj:
        return False
    await db.delete(obj)
    await db.commit()
    logger.info("Schedule %s deleted", schedule_id)
    return True


async def list_schedules(
    db: AsyncSession,
    scope: ScopedQuery,
    class_id: Optional[UUID] = None,
    teacher_id: Optional[UUID] = None,
    day_of_week: Optional[DayOfWeek] = None,
    active_only: bool = False,
    page: int = 1,
    per_page: int = 20,
) -> Page[ScheduleResponse]:
    stmt = scope.schedules(select(Schedule).options(*_WITH_REFS))
    if class_id is not None:
        stmt = stmt.where(Schedule.class_id == class_id)
    if teacher_id is not None:
        stmt = stmt.where(Schedule.teacher_id == teacher_id)
    if day_of_week is not None:
        stmt = stmt.where(Schedule.day_of_week == day_of_week.value)
    if active_only:
        stmt = stmt.where(Schedule.is_active.is_(True))
    stmt = stmt.order_by(day_of_week_order, Schedule.start_time, Schedule.id)
    rows, total = await paginate(db, stmt, page, per_page)
    return Page.build([schedule_to_response(s) for s in rows], total, page, per_page)


async def weekly_schedule(db: AsyncSession, scope: ScopedQuery) -> Dict[str, List[ScheduleResponse]]:
    """Active lessons visible to the caller grouped by weekday, monday first."""
    stmt = (
        scope.schedules(select(Schedule).options(*_WITH_REFS))
        .where(Schedule.is_active.is_(True))
        .order_by(day_of_week_order, Schedule.start_time)
    )
    result = await db.execute(stmt)
    grouped: Dict[str, List[ScheduleResponse]] = OrderedDict()
    for s in result.scalars().all():
        grouped.setdefault(s.day_of_week, []).append(schedule_to_response(s))
    return grouped


async def schedules_for_day(db: AsyncSession, scope: ScopedQuery, day: DayOfWeek) -> List[ScheduleResponse]:
    stmt = (
        scope.schedules(select(Schedule).options(*_WITH_REFS))
        .where(Schedule.day_of_week == day.value, Schedule.is_active.is_(True))
        .order_by(Schedule.start_time)
    )
    result = await db.execute(stmt)
    return [schedule_to_response(s) for s in result.scalars().all()]


async def get_schedule(
    db: AsyncSession,
    scope: ScopedQuery,
    schedule_id: UUID,
    include_students: bool = False,
) -> ScheduleDetailResponse:
    stmt = scope.schedules(select(Schedule).options(*_WITH_REFS).where(Schedule.id == schedule_id))
    obj = (await db.execute(stmt)).scalar_one_or_none()
    if not obj:
        raise NotFoundError("Schedule not found")
    students: List[ScheduleStudentItem] = []
    if include_students:
        students = [
            ScheduleStudentItem(id=u.id, name=u.name, student_number=u.student_number)
            for u in await enrolled_students(db, obj.class_id)
        ]
    return schedule_to_response(obj, ScheduleDetailResponse, students=students)


async def enrolled_students(db: AsyncSession, class_id: UUID) -> List[User]:
    """Students with an active enrollment in the class, by name."""
    result = await db.execute(
        select(User)
        .join(ClassEnrollment, ClassEnrollment.student_id == User.id)
        .where(
            ClassEnrollment.class_id == class_id,
            ClassEnrollment.is_active.is_(True),
            User.role == UserRole.STUDENT.value,
        )
        .order_by(User.name)
    )
    return list(result.scalars().all())
