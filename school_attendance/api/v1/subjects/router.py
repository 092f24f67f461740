from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.auth.rbac import require_admin
from school_attendance.core.exceptions import ServiceError
from school_attendance.core.schemas import Page
from school_attendance.db.session import get_db

from .schemas import SubjectCreate, SubjectDetailResponse, SubjectResponse, SubjectUpdate
from . import service

router = APIRouter(
    prefix="/api/v1/admin/subjects",
    tags=["subjects"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=Page[SubjectResponse])
async def list_subjects(
    search: Optional[str] = Query(None, description="Matches name or code"),
    active_only: bool = Query(False),
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await service.list_subjects(db, search=search, active_only=active_only, page=page, per_page=per_page)


@router.post("", response_model=SubjectResponse, status_code=status.HTTP_201_CREATED)
async def create_subject(
    payload: SubjectCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.create_subject(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/{subject_id}", response_model=SubjectDetailResponse)
async def get_subject(
    subject_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.get_subject(db, subject_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put("/{subject_id}", response_model=SubjectResponse)
async def update_subject(
    subject_id: UUID,
    payload: SubjectUpdate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.update_subject(db, subject_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.delete("/{subject_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_subject(
    subject_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        deleted = await service.delete_subject(db, subject_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subject not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
