from datetime import date
from typing import List, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field

from school_attendance.core.enums import AttendanceStatus

from school_attendance.api.v1.attendance.schemas import AttendanceResponse, StatusCounts
from school_attendance.api.v1.leaves.schemas import LeaveRequestResponse
from school_attendance.api.v1.schedules.schemas import ScheduleResponse


class AdminTotals(BaseModel):
    total_students: int
    total_teachers: int
    total_classes: int
    total_subjects: int


class DailyStatusCounts(BaseModel):
    date: date
    counts: StatusCounts


class AdminDashboard(BaseModel):
    role: Literal["admin"] = "admin"
    stats: AdminTotals
    attendance_today: StatusCounts
    pending_leave_requests: List[LeaveRequestResponse]
    weekly_stats: List[DailyStatusCounts] = Field(..., description="Monday to Sunday of the current week")


class TeachingClass(BaseModel):
    id: UUID
    name: str
    grade: str
    active_students: int


class TeacherDashboard(BaseModel):
    role: Literal["teacher"] = "teacher"
    today_schedule: List[ScheduleResponse]
    teaching_classes: List[TeachingClass]
    recent_attendance: List[AttendanceResponse]
    pending_leave_requests: List[LeaveRequestResponse]


class StudentClass(BaseModel):
    id: UUID
    name: str
    grade: str


class StatusShare(BaseModel):
    status: AttendanceStatus
    count: int
    percentage: float


class StudentDashboard(BaseModel):
    role: Literal["student"] = "student"
    classes: List[StudentClass]
    today_schedule: List[ScheduleResponse]
    attendance_stats: List[StatusShare]
    total_records: int
    recent_attendance: List[AttendanceResponse]
    leave_requests: List[LeaveRequestResponse]


DashboardResponse = Union[AdminDashboard, TeacherDashboard, StudentDashboard]
