from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, model_validator

from school_attendance.core.enums import UserRole


class UserCreate(BaseModel):
    name: str = Field(..., max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8)
    password_confirmation: str
    role: UserRole
    student_number: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=500)
    class_ids: Optional[List[UUID]] = Field(None, description="Classes to enroll a student into")

    @model_validator(mode="after")
    def validate_password_confirmation(self) -> "UserCreate":
        if self.password != self.password_confirmation:
            raise ValueError("password and password_confirmation do not match")
        return self


class UserUpdate(BaseModel):
    """Full update. For students, class_ids replaces the enrollment set (None detaches all)."""

    name: str = Field(..., max_length=255)
    email: EmailStr
    password: Optional[str] = Field(None, min_length=8)
    password_confirmation: Optional[str] = None
    role: UserRole
    student_number: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=500)
    class_ids: Optional[List[UUID]] = None

    @model_validator(mode="after")
    def validate_password_confirmation(self) -> "UserUpdate":
        if self.password and self.password != self.password_confirmation:
            raise ValueError("password and password_confirmation do not match")
        return self


class UserResponse(BaseModel):
    id: UUID
    name: str
    email: str
    role: UserRole
    student_number: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserClassItem(BaseModel):
    id: UUID
    name: str
    grade: str
    enrolled_at: date
    is_active: bool


class UserScheduleItem(BaseModel):
    id: UUID
    class_name: str
    subject_name: str
    day_of_week: str
    start_time: str
    end_time: str
    room: Optional[str] = None
    is_active: bool


class UserDetailResponse(UserResponse):
    """User with enrollments (students) and teaching schedules (teachers)."""

    classes: List[UserClassItem] = Field(default_factory=list)
    teaching_schedules: List[UserScheduleItem] = Field(default_factory=list)
