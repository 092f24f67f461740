from datetime import datetime, time
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer, field_validator

from school_attendance.core.enums import DayOfWeek


def _parse_time_24(v: Union[str, time]) -> time:
    """Parse 24-hour time string (HH:MM or HH:MM:SS) to time."""
    if isinstance(v, time):
        return v
    if isinstance(v, str):
        v = v.strip()
        if len(v) == 5:  # HH:MM
            return datetime.strptime(v, "%H:%M").time()
        return datetime.strptime(v, "%H:%M:%S").time()
    raise ValueError("start_time/end_time must be 24-hour string (e.g. 09:00, 09:45) or time")


def format_time_24(t: time) -> str:
    return t.strftime("%H:%M")


class ScheduleCreate(BaseModel):
    class_id: UUID
    subject_id: UUID
    teacher_id: UUID
    day_of_week: DayOfWeek
    start_time: time = Field(..., description="24-hour format, e.g. 09:00")
    end_time: time = Field(..., description="24-hour format, e.g. 09:45")
    room: Optional[str] = Field(None, max_length=50)
    is_active: bool = True

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v: Union[str, time]) -> time:
        return _parse_time_24(v)


class ScheduleUpdate(ScheduleCreate):
    """Full replacement of a slot; the conflict check runs against the new values."""


class ScheduleResponse(BaseModel):
    id: UUID
    class_id: UUID
    class_name: Optional[str] = None
    subject_id: UUID
    subject_name: Optional[str] = None
    subject_code: Optional[str] = None
    teacher_id: UUID
    teacher_name: Optional[str] = None
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    room: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @field_serializer("start_time", "end_time")
    def serialize_time_24(self, t: time) -> str:
        """Output as 24-hour string HH:MM (e.g. 09:00, 09:45)."""
        return format_time_24(t)


class ScheduleStudentItem(BaseModel):
    id: UUID
    name: str
    student_number: Optional[str] = None


class ScheduleDetailResponse(ScheduleResponse):
    students: List[ScheduleStudentItem] = Field(default_factory=list)
