"""
Teacher double-booking detection.

Lessons are half-open intervals [start, end): a lesson ending at 09:00 and
another starting at 09:00 on the same day do not overlap.
"""

from datetime import time
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.core.enums import DayOfWeek
from school_attendance.core.models import Schedule


def intervals_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    return start_a < end_b and start_b < end_a


def first_overlapping(
    start: time,
    end: time,
    existing: Iterable[Schedule],
    exclude_schedule_id: Optional[UUID] = None,
) -> Optional[Schedule]:
    """In-memory form of the check, over schedules already loaded for one teacher and day."""
    for other in existing:
        if exclude_schedule_id is not None and other.id == exclude_schedule_id:
            continue
        if not other.is_active:
            continue
        if intervals_overlap(start, end, other.start_time, other.end_time):
            return other
    return None


async def find_conflicting_schedule(
    db: AsyncSession,
    teacher_id: UUID,
    day_of_week: DayOfWeek,
    start_time: time,
    end_time: time,
    exclude_schedule_id: Optional[UUID] = None,
) -> Optional[Schedule]:
    """First active schedule of the teacher on that day overlapping [start_time, end_time)."""
    stmt = select(Schedule).where(
        Schedule.teacher_id == teacher_id,
        Schedule.day_of_week == DayOfWeek(day_of_week).value,
        Schedule.is_active.is_(True),
        Schedule.start_time < end_time,
        Schedule.end_time > start_time,
    )
    if exclude_schedule_id is not None:
        stmt = stmt.where(Schedule.id != exclude_schedule_id)
    result = await db.execute(stmt.order_by(Schedule.start_time).limit(1))
    return result.scalar_one_or_none()


async def has_schedule_conflict(
    db: AsyncSession,
    teacher_id: UUID,
    day_of_week: DayOfWeek,
    start_time: time,
    end_time: time,
    exclude_schedule_id: Optional[UUID] = None,
) -> bool:
    conflict = await find_conflicting_schedule(
        db, teacher_id, day_of_week, start_time, end_time, exclude_schedule_id
    )
    return conflict is not None
