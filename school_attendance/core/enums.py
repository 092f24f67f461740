from datetime import date
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


STAFF_ROLES = (UserRole.ADMIN.value, UserRole.TEACHER.value)


class DayOfWeek(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, d: date) -> "DayOfWeek":
        return list(cls)[d.weekday()]

    @property
    def order(self) -> int:
        """0=Monday .. 6=Sunday, for sorting by weekday instead of name."""
        return list(DayOfWeek).index(self)


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


class LeaveType(str, Enum):
    SICK = "sick"
    FAMILY = "family"
    PERSONAL = "personal"
    EMERGENCY = "emergency"


class LeaveStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
