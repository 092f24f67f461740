from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.auth.rbac import require_admin
from school_attendance.core.enums import UserRole
from school_attendance.core.exceptions import ServiceError
from school_attendance.core.schemas import Page
from school_attendance.core.storage import EvidenceStorage, get_evidence_storage
from school_attendance.db.session import get_db

from .schemas import UserCreate, UserDetailResponse, UserResponse, UserUpdate
from . import service

router = APIRouter(
    prefix="/api/v1/admin/users",
    tags=["users"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=Page[UserResponse])
async def list_users(
    role: Optional[UserRole] = Query(None),
    search: Optional[str] = Query(None, description="Matches name, email or student number"),
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await service.list_users(db, role=role, search=search, page=page, per_page=per_page)


@router.post("", response_model=UserDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.create_user(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/{user_id}", response_model=UserDetailResponse)
async def get_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.get_user(db, user_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put("/{user_id}", response_model=UserDetailResponse)
async def update_user(
    user_id: UUID,
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.update_user(db, user_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    storage: EvidenceStorage = Depends(get_evidence_storage),
):
    try:
        deleted = await service.delete_user(db, storage, user_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
