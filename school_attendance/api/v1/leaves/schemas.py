from datetime import date, datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from school_attendance.core.enums import LeaveStatus, LeaveType


class LeaveRequestCreate(BaseModel):
    """Submission fields. Arrives as multipart form data next to an optional evidence file."""

    from_date: date
    to_date: date
    type: LeaveType
    reason: str = Field(..., min_length=10, max_length=1000)

    @model_validator(mode="after")
    def validate_range(self) -> "LeaveRequestCreate":
        if self.to_date < self.from_date:
            raise ValueError("to_date must be on or after from_date")
        return self


class LeaveReview(BaseModel):
    status: Literal["approved", "rejected"]
    admin_notes: Optional[str] = Field(None, max_length=1000)


class LeaveRequestResponse(BaseModel):
    id: UUID
    student_id: UUID
    student_name: Optional[str] = None
    from_date: date
    to_date: date
    days: int
    type: LeaveType
    reason: str
    evidence_file: Optional[str] = None
    status: LeaveStatus
    admin_notes: Optional[str] = None
    reviewed_by: Optional[UUID] = None
    reviewer_name: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
