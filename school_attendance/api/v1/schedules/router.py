from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.auth.dependencies import get_current_user, get_scope
from school_attendance.auth.rbac import require_admin
from school_attendance.auth.schemas import CurrentUser
from school_attendance.core.enums import DayOfWeek
from school_attendance.core.exceptions import ServiceError
from school_attendance.core.schemas import Page
from school_attendance.core.scopes import ScopedQuery
from school_attendance.db.session import get_db

from .schemas import ScheduleCreate, ScheduleDetailResponse, ScheduleResponse, ScheduleUpdate
from . import service

router = APIRouter(prefix="/api/v1/schedules", tags=["schedules"])


@router.get("", response_model=Page[ScheduleResponse])
async def list_schedules(
    class_id: Optional[UUID] = Query(None),
    teacher_id: Optional[UUID] = Query(None),
    day_of_week: Optional[DayOfWeek] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    scope: ScopedQuery = Depends(get_scope),
):
    """Admin: all slots with filters. Teacher: own active slots. Student: active slots of enrolled classes."""
    return await service.list_schedules(
        db,
        scope,
        class_id=class_id,
        teacher_id=teacher_id,
        day_of_week=day_of_week,
        active_only=not current_user.is_admin,
        page=page,
        per_page=per_page,
    )


@router.get("/weekly", response_model=Dict[str, List[ScheduleResponse]])
async def weekly_schedule(
    db: AsyncSession = Depends(get_db),
    scope: ScopedQuery = Depends(get_scope),
):
    """Caller's active timetable grouped by day of week."""
    return await service.weekly_schedule(db, scope)


@router.get("/{schedule_id}", response_model=ScheduleDetailResponse)
async def get_schedule(
    schedule_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    scope: ScopedQuery = Depends(get_scope),
):
    try:
        return await service.get_schedule(db, scope, schedule_id, include_students=current_user.is_staff)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post(
    "",
    response_model=ScheduleResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_schedule(
    payload: ScheduleCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.create_schedule(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put(
    "/{schedule_id}",
    response_model=ScheduleResponse,
    dependencies=[Depends(require_admin)],
)
async def update_schedule(
    schedule_id: UUID,
    payload: ScheduleUpdate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.update_schedule(db, schedule_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.delete(
    "/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def delete_schedule(
    schedule_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    deleted = await service.delete_schedule(db, schedule_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule not found")
