"""
Role-scoped query views.

Every read path narrows its base statement through the caller's scope before
any client-supplied filter is applied, so a client id can only narrow results
further and never widen them beyond what the role may see.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import Select, select

from school_attendance.auth.schemas import CurrentUser
from school_attendance.core.enums import UserRole
from school_attendance.core.models import Attendance, ClassEnrollment, LeaveRequest, Schedule


class ScopedQuery:
    """Query-building contract shared by all role scopes."""

    #: id of the caller the scope is bound to (None for unrestricted)
    user_id: Optional[UUID] = None

    def attendance(self, stmt: Select) -> Select:
        raise NotImplementedError

    def schedules(self, stmt: Select) -> Select:
        raise NotImplementedError

    def leave_requests(self, stmt: Select) -> Select:
        raise NotImplementedError


class AdminScope(ScopedQuery):
    def attendance(self, stmt: Select) -> Select:
        return stmt

    def schedules(self, stmt: Select) -> Select:
        return stmt

    def leave_requests(self, stmt: Select) -> Select:
        return stmt

    def __repr__(self) -> str:
        return "AdminScope()"


class TeacherScope(ScopedQuery):
    """Lessons the teacher is assigned to, and the attendance recorded for them."""

    def __init__(self, teacher_id: UUID) -> None:
        self.user_id = teacher_id

    def attendance(self, stmt: Select) -> Select:
        own_schedules = select(Schedule.id).where(Schedule.teacher_id == self.user_id)
        return stmt.where(Attendance.schedule_id.in_(own_schedules))

    def schedules(self, stmt: Select) -> Select:
        return stmt.where(Schedule.teacher_id == self.user_id)

    def leave_requests(self, stmt: Select) -> Select:
        # Staff review every student's requests
        return stmt

    def __repr__(self) -> str:
        return f"TeacherScope({self.user_id})"


class StudentScope(ScopedQuery):
    """Own rows only; schedules of classes with an active enrollment."""

    def __init__(self, student_id: UUID) -> None:
        self.user_id = student_id

    def attendance(self, stmt: Select) -> Select:
        return stmt.where(Attendance.student_id == self.user_id)

    def schedules(self, stmt: Select) -> Select:
        enrolled_classes = select(ClassEnrollment.class_id).where(
            ClassEnrollment.student_id == self.user_id,
            ClassEnrollment.is_active.is_(True),
        )
        return stmt.where(
            Schedule.class_id.in_(enrolled_classes),
            Schedule.is_active.is_(True),
        )

    def leave_requests(self, stmt: Select) -> Select:
        return stmt.where(LeaveRequest.student_id == self.user_id)

    def __repr__(self) -> str:
        return f"StudentScope({self.user_id})"


def scope_for(current_user: CurrentUser) -> ScopedQuery:
    """Pick the scope variant once, from the authenticated identity."""
    if current_user.role == UserRole.ADMIN:
        return AdminScope()
    if current_user.role == UserRole.TEACHER:
        return TeacherScope(current_user.id)
    return StudentScope(current_user.id)
