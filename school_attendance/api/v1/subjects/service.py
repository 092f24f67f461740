import logging
from typing import Dict, Iterable, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_attendance.core.enums import DayOfWeek
from school_attendance.core.exceptions import ConflictError, NotFoundError
from school_attendance.core.models import Schedule, Subject
from school_attendance.core.pagination import paginate
from school_attendance.core.schemas import Page

from school_attendance.api.v1.schedules.schemas import format_time_24

from .schemas import SubjectCreate, SubjectDetailResponse, SubjectResponse, SubjectScheduleItem, SubjectUpdate

logger = logging.getLogger(__name__)


def _subject_to_response(s: Subject, schedules_count: int = 0, response_cls=SubjectResponse, **extra):
    return response_cls(
        id=s.id,
        name=s.name,
        code=s.code,
        description=s.description,
        is_active=s.is_active,
        schedules_count=schedules_count,
        created_at=s.created_at,
        updated_at=s.updated_at,
        **extra,
    )


async def _schedule_counts(db: AsyncSession, subject_ids: Iterable[UUID]) -> Dict[UUID, int]:
    ids = list(subject_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(Schedule.subject_id, func.count(Schedule.id))
        .where(Schedule.subject_id.in_(ids))
        .group_by(Schedule.subject_id)
    )
    return {subject_id: count for subject_id, count in result.all()}


async def _code_taken(db: AsyncSession, code: str, exclude_subject_id: Optional[UUID] = None) -> bool:
    stmt = select(Subject.id).where(Subject.code == code)
    if exclude_subject_id is not None:
        stmt = stmt.where(Subject.id != exclude_subject_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


async def create_subject(db: AsyncSession, payload: SubjectCreate) -> SubjectResponse:
    if await _code_taken(db, payload.code):
        raise ConflictError("Subject code already exists", field="code")
    obj = Subject(
        name=payload.name.strip(),
        code=payload.code,
        description=payload.description,
        is_active=payload.is_active,
    )
    db.add(obj)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Subject code already exists", field="code")
    await db.refresh(obj)
    logger.info("Subject %s (%s) created", obj.id, obj.code)
    return _subject_to_response(obj)


async def list_subjects(
    db: AsyncSession,
    search: Optional[str] = None,
    active_only: bool = False,
    page: int = 1,
    per_page: int = 15,
) -> Page[SubjectResponse]:
    stmt = select(Subject)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(Subject.name.ilike(like), Subject.code.ilike(like)))
    if active_only:
        stmt = stmt.where(Subject.is_active.is_(True))
    stmt = stmt.order_by(Subject.name)
    rows, total = await paginate(db, stmt, page, per_page)
    counts = await _schedule_counts(db, (s.id for s in rows))
    return Page.build([_subject_to_response(s, counts.get(s.id, 0)) for s in rows], total, page, per_page)


async def get_subject(db: AsyncSession, subject_id: UUID) -> SubjectDetailResponse:
    result = await db.execute(
        select(Subject)
        .options(
            selectinload(Subject.schedules).selectinload(Schedule.school_class),
            selectinload(Subject.schedules).selectinload(Schedule.teacher),
        )
        .where(Subject.id == subject_id)
        .execution_options(populate_existing=True)
    )
    obj = result.scalar_one_or_none()
    if not obj:
        raise NotFoundError("Subject not found")
    ordered = sorted(obj.schedules, key=lambda s: (DayOfWeek(s.day_of_week).order, s.start_time))
    schedules = [
        SubjectScheduleItem(
            id=s.id,
            class_name=s.school_class.name,
            teacher_name=s.teacher.name,
            day_of_week=s.day_of_week,
            start_time=format_time_24(s.start_time),
            end_time=format_time_24(s.end_time),
            room=s.room,
            is_active=s.is_active,
        )
        for s in ordered
    ]
    return _subject_to_response(obj, len(schedules), SubjectDetailResponse, schedules=schedules)


async def update_subject(db: AsyncSession, subject_id: UUID, payload: SubjectUpdate) -> SubjectResponse:
    obj = await db.get(Subject, subject_id)
    if not obj:
        raise NotFoundError("Subject not found")
    if payload.code is not None and payload.code != obj.code:
        if await _code_taken(db, payload.code, exclude_subject_id=subject_id):
            raise ConflictError("Subject code already exists", field="code")
        obj.code = payload.code
    if payload.name is not None:
        obj.name = payload.name.strip()
    if payload.description is not None:
        obj.description = payload.description
    if payload.is_active is not None:
        obj.is_active = payload.is_active
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Subject code already exists", field="code")
    await db.refresh(obj)
    logger.info("Subject %s updated", subject_id)
    counts = await _schedule_counts(db, [obj.id])
    return _subject_to_response(obj, counts.get(obj.id, 0))


async def delete_subject(db: AsyncSession, subject_id: UUID) -> bool:
    obj = await db.get(Subject, subject_id)
    if not obj:
        return False
    in_use = (
        await db.execute(
            select(func.count(Schedule.id)).where(
                Schedule.subject_id == subject_id,
                Schedule.is_active.is_(True),
            )
        )
    ).scalar_one()
    if in_use:
        logger.warning("Refused to delete subject %s: %d active schedules", subject_id, in_use)
        raise ConflictError("Cannot delete subject with active schedules.")
    await db.delete(obj)
    await db.commit()
    logger.info("Subject %s deleted", subject_id)
    return True
