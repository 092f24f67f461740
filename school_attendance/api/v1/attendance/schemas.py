from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from school_attendance.core.enums import AttendanceStatus

from school_attendance.api.v1.schedules.schemas import ScheduleResponse


class AttendanceEntry(BaseModel):
    student_id: UUID
    status: AttendanceStatus
    notes: Optional[str] = Field(None, max_length=500)


class AttendanceBatchCreate(BaseModel):
    """One lesson's roll call: every entry shares schedule_id and date."""

    schedule_id: UUID
    date: date
    attendance: List[AttendanceEntry] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_unique_students(self) -> "AttendanceBatchCreate":
        ids = [e.student_id for e in self.attendance]
        if len(ids) != len(set(ids)):
            raise ValueError("Each student may appear only once per attendance batch")
        return self


class AttendanceResponse(BaseModel):
    id: UUID
    student_id: UUID
    student_name: Optional[str] = None
    student_number: Optional[str] = None
    schedule_id: UUID
    class_name: Optional[str] = None
    subject_name: Optional[str] = None
    date: date
    status: AttendanceStatus
    notes: Optional[str] = None
    recorded_by: UUID
    recorder_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AttendanceFailure(BaseModel):
    student_id: UUID
    error: str


class AttendanceBatchResult(BaseModel):
    inserted: int = 0
    updated: int = 0
    failed: List[AttendanceFailure] = Field(default_factory=list)
    records: List[AttendanceResponse] = Field(default_factory=list)


class AttendanceSheetStudent(BaseModel):
    id: UUID
    name: str
    student_number: Optional[str] = None
    status: AttendanceStatus = AttendanceStatus.ABSENT
    notes: str = ""
    recorded: bool = False


class AttendanceSheetResponse(BaseModel):
    schedule: ScheduleResponse
    date: date
    students: List[AttendanceSheetStudent]


class StatusCounts(BaseModel):
    present: int = 0
    absent: int = 0
    late: int = 0
    excused: int = 0
    total: int = 0

    def add(self, status: str, count: int = 1) -> None:
        setattr(self, status, getattr(self, status) + count)
        self.total += count


class ReportSubjectRow(BaseModel):
    subject_name: str
    counts: StatusCounts


class ReportStudentRow(BaseModel):
    student_id: UUID
    student_name: str
    student_number: Optional[str] = None
    subjects: List[ReportSubjectRow] = Field(default_factory=list)
    totals: StatusCounts = Field(default_factory=StatusCounts)


class AttendanceReport(BaseModel):
    type: str
    id: UUID
    name: str
    date_from: date
    date_to: date
    students: List[ReportStudentRow]
