from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ClassCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    grade: str = Field(..., min_length=1, max_length=10)
    description: Optional[str] = Field(None, max_length=1000)
    is_active: bool = True


class ClassUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    grade: Optional[str] = Field(None, min_length=1, max_length=10)
    description: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None
    student_ids: Optional[List[UUID]] = Field(
        None, description="Replaces the enrolled students; omit to leave enrollments untouched"
    )


class EnrollmentUpdate(BaseModel):
    is_active: bool


class ClassResponse(BaseModel):
    id: UUID
    name: str
    grade: str
    description: Optional[str] = None
    is_active: bool
    students_count: int = 0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ClassStudentItem(BaseModel):
    id: UUID
    name: str
    email: str
    student_number: Optional[str] = None
    enrolled_at: date
    is_active: bool


class ClassScheduleItem(BaseModel):
    id: UUID
    subject_name: str
    teacher_name: str
    day_of_week: str
    start_time: str
    end_time: str
    room: Optional[str] = None
    is_active: bool


class ClassDetailResponse(ClassResponse):
    students: List[ClassStudentItem] = Field(default_factory=list)
    schedules: List[ClassScheduleItem] = Field(default_factory=list)


class EnrollmentResponse(BaseModel):
    class_id: UUID
    student_id: UUID
    enrolled_at: date
    is_active: bool
