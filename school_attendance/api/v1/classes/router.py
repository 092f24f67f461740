from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.auth.rbac import require_admin
from school_attendance.core.exceptions import ServiceError
from school_attendance.core.schemas import Page
from school_attendance.db.session import get_db

from .schemas import ClassCreate, ClassDetailResponse, ClassResponse, ClassUpdate, EnrollmentResponse, EnrollmentUpdate
from . import service

router = APIRouter(
    prefix="/api/v1/admin/classes",
    tags=["classes"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=Page[ClassResponse])
async def list_classes(
    grade: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    active_only: bool = Query(False),
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await service.list_classes(
        db, grade=grade, search=search, active_only=active_only, page=page, per_page=per_page
    )


@router.post("", response_model=ClassResponse, status_code=status.HTTP_201_CREATED)
async def create_class(
    payload: ClassCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.create_class(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/{class_id}", response_model=ClassDetailResponse)
async def get_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Class with its enrolled students and timetable."""
    try:
        return await service.get_class(db, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put("/{class_id}", response_model=ClassDetailResponse)
async def update_class(
    class_id: UUID,
    payload: ClassUpdate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.update_class(db, class_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.patch("/{class_id}/students/{student_id}", response_model=EnrollmentResponse)
async def set_enrollment_active(
    class_id: UUID,
    student_id: UUID,
    payload: EnrollmentUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Activate or deactivate one student's enrollment without removing it."""
    try:
        return await service.set_enrollment_active(db, class_id, student_id, payload.is_active)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.delete("/{class_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        deleted = await service.delete_class(db, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    if not deleted:
        raise HTTPException(status_code=404, detail="Class not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
