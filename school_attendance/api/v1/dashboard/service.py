"""Read-only dashboard rollups, one per role."""

import logging
from datetime import date, timedelta
from typing import List
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_attendance.auth.models import User
from school_attendance.core.enums import AttendanceStatus, DayOfWeek, LeaveStatus, UserRole
from school_attendance.core.models import Attendance, ClassEnrollment, LeaveRequest, Schedule, SchoolClass, Subject
from school_attendance.core.scopes import AdminScope, ScopedQuery, StudentScope, TeacherScope

from school_attendance.api.v1.attendance.schemas import StatusCounts
from school_attendance.api.v1.attendance.service import attendance_to_response
from school_attendance.api.v1.leaves.service import leave_to_response
from school_attendance.api.v1.schedules.service import schedules_for_day

from .schemas import (
    AdminDashboard,
    AdminTotals,
    DailyStatusCounts,
    DashboardResponse,
    StatusShare,
    StudentClass,
    StudentDashboard,
    TeacherDashboard,
    TeachingClass,
)

logger = logging.getLogger(__name__)

_ATTENDANCE_REFS = (
    selectinload(Attendance.student),
    selectinload(Attendance.recorder),
    selectinload(Attendance.schedule).selectinload(Schedule.school_class),
    selectinload(Attendance.schedule).selectinload(Schedule.subject),
)
_LEAVE_REFS = (selectinload(LeaveRequest.student), selectinload(LeaveRequest.reviewer))


async def _count(db: AsyncSession, stmt) -> int:
    return (await db.execute(stmt)).scalar_one()


async def _pending_leaves(db: AsyncSession, limit: int = 5, student_ids=None):
    stmt = select(LeaveRequest).options(*_LEAVE_REFS).where(LeaveRequest.status == LeaveStatus.PENDING.value)
    if student_ids is not None:
        stmt = stmt.where(LeaveRequest.student_id.in_(student_ids))
    stmt = stmt.order_by(LeaveRequest.created_at.desc()).limit(limit)
    return [leave_to_response(lr) for lr in (await db.execute(stmt)).scalars().all()]


async def admin_dashboard(db: AsyncSession, today: date) -> AdminDashboard:
    stats = AdminTotals(
        total_students=await _count(db, select(func.count(User.id)).where(User.role == UserRole.STUDENT.value)),
        total_teachers=await _count(db, select(func.count(User.id)).where(User.role == UserRole.TEACHER.value)),
        total_classes=await _count(db, select(func.count(SchoolClass.id)).where(SchoolClass.is_active.is_(True))),
        total_subjects=await _count(db, select(func.count(Subject.id)).where(Subject.is_active.is_(True))),
    )

    attendance_today = StatusCounts()
    result = await db.execute(
        select(Attendance.status, func.count(Attendance.id))
        .where(Attendance.date == today)
        .group_by(Attendance.status)
    )
    for status, count in result.all():
        attendance_today.add(status, count)

    week_start = today - timedelta(days=today.weekday())
    week_end = week_start + timedelta(days=6)
    weekly = {week_start + timedelta(days=i): StatusCounts() for i in range(7)}
    result = await db.execute(
        select(Attendance.date, Attendance.status, func.count(Attendance.id))
        .where(Attendance.date >= week_start, Attendance.date <= week_end)
        .group_by(Attendance.date, Attendance.status)
    )
    for day, status, count in result.all():
        weekly[day].add(status, count)

    return AdminDashboard(
        stats=stats,
        attendance_today=attendance_today,
        pending_leave_requests=await _pending_leaves(db),
        weekly_stats=[DailyStatusCounts(date=d, counts=c) for d, c in weekly.items()],
    )


async def teacher_dashboard(db: AsyncSession, scope: ScopedQuery, teacher_id: UUID, today: date) -> TeacherDashboard:
    today_schedule = await schedules_for_day(db, scope, DayOfWeek.from_date(today))

    class_ids = select(Schedule.class_id).where(
        Schedule.teacher_id == teacher_id,
        Schedule.is_active.is_(True),
    )
    active_students = (
        select(ClassEnrollment.class_id, func.count(ClassEnrollment.id).label("n"))
        .where(ClassEnrollment.is_active.is_(True))
        .group_by(ClassEnrollment.class_id)
        .subquery()
    )
    result = await db.execute(
        select(SchoolClass, func.coalesce(active_students.c.n, 0))
        .outerjoin(active_students, active_students.c.class_id == SchoolClass.id)
        .where(SchoolClass.id.in_(class_ids))
        .order_by(SchoolClass.name)
    )
    teaching_classes = [
        TeachingClass(id=c.id, name=c.name, grade=c.grade, active_students=n) for c, n in result.all()
    ]

    recent = await db.execute(
        select(Attendance)
        .options(*_ATTENDANCE_REFS)
        .where(Attendance.recorded_by == teacher_id)
        .order_by(Attendance.created_at.desc())
        .limit(10)
    )

    student_ids = select(ClassEnrollment.student_id).where(ClassEnrollment.class_id.in_(class_ids))
    return TeacherDashboard(
        today_schedule=today_schedule,
        teaching_classes=teaching_classes,
        recent_attendance=[attendance_to_response(a) for a in recent.scalars().all()],
        pending_leave_requests=await _pending_leaves(db, student_ids=student_ids),
    )


def _status_shares(counts: StatusCounts) -> List[StatusShare]:
    shares = []
    for status in AttendanceStatus:
        count = getattr(counts, status.value)
        percentage = round(count * 100.0 / counts.total, 1) if counts.total else 0.0
        shares.append(StatusShare(status=status, count=count, percentage=percentage))
    return shares


async def student_dashboard(db: AsyncSession, scope: ScopedQuery, student_id: UUID, today: date) -> StudentDashboard:
    result = await db.execute(
        select(SchoolClass)
        .join(ClassEnrollment, ClassEnrollment.class_id == SchoolClass.id)
        .where(ClassEnrollment.student_id == student_id, ClassEnrollment.is_active.is_(True))
        .order_by(SchoolClass.name)
    )
    classes = [StudentClass(id=c.id, name=c.name, grade=c.grade) for c in result.scalars().all()]

    counts = StatusCounts()
    result = await db.execute(
        select(Attendance.status, func.count(Attendance.id))
        .where(Attendance.student_id == student_id)
        .group_by(Attendance.status)
    )
    for status, count in result.all():
        counts.add(status, count)

    recent = await db.execute(
        select(Attendance)
        .options(*_ATTENDANCE_REFS)
        .where(Attendance.student_id == student_id)
        .order_by(Attendance.created_at.desc())
        .limit(10)
    )
    leaves = await db.execute(
        select(LeaveRequest)
        .options(*_LEAVE_REFS)
        .where(LeaveRequest.student_id == student_id)
        .order_by(LeaveRequest.created_at.desc())
        .limit(5)
    )
    return StudentDashboard(
        classes=classes,
        today_schedule=await schedules_for_day(db, scope, DayOfWeek.from_date(today)),
        attendance_stats=_status_shares(counts),
        total_records=counts.total,
        recent_attendance=[attendance_to_response(a) for a in recent.scalars().all()],
        leave_requests=[leave_to_response(lr) for lr in leaves.scalars().all()],
    )


async def dashboard_for(db: AsyncSession, scope: ScopedQuery, today: date) -> DashboardResponse:
    logger.debug("Building dashboard for %r", scope)
    if isinstance(scope, AdminScope):
        return await admin_dashboard(db, today)
    if isinstance(scope, TeacherScope):
        return await teacher_dashboard(db, scope, scope.user_id, today)
    if isinstance(scope, StudentScope):
        return await student_dashboard(db, scope, scope.user_id, today)
    raise TypeError(f"No dashboard for {scope!r}")
