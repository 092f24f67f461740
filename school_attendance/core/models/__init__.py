from school_attendance.core.models.attendance import Attendance
from school_attendance.core.models.class_model import ClassEnrollment, SchoolClass
from school_attendance.core.models.leave_request import LeaveRequest
from school_attendance.core.models.schedule import Schedule, day_of_week_order
from school_attendance.core.models.subject import Subject

__all__ = [
    "Attendance",
    "ClassEnrollment",
    "LeaveRequest",
    "Schedule",
    "SchoolClass",
    "Subject",
    "day_of_week_order",
]
