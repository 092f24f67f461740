from datetime import date
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.auth.dependencies import get_current_user, get_scope
from school_attendance.auth.rbac import require_staff
from school_attendance.auth.schemas import CurrentUser
from school_attendance.core.enums import AttendanceStatus
from school_attendance.core.exceptions import ServiceError
from school_attendance.core.schemas import Page
from school_attendance.core.scopes import ScopedQuery
from school_attendance.db.session import get_db

from .schemas import AttendanceBatchCreate, AttendanceBatchResult, AttendanceReport, AttendanceResponse, AttendanceSheetResponse
from . import service

router = APIRouter(prefix="/api/v1/attendance", tags=["attendance"])


@router.get("", response_model=Page[AttendanceResponse])
async def list_attendance(
    class_id: Optional[UUID] = Query(None),
    subject_id: Optional[UUID] = Query(None),
    on_date: Optional[date] = Query(None, alias="date"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    status: Optional[AttendanceStatus] = Query(None),
    search: Optional[str] = Query(None, description="Student name or number"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    scope: ScopedQuery = Depends(get_scope),
):
    """Attendance rows visible to the caller, newest first."""
    return await service.list_attendance(
        db,
        scope,
        class_id=class_id,
        subject_id=subject_id,
        on_date=on_date,
        date_from=date_from,
        date_to=date_to,
        status=status,
        search=search,
        page=page,
        per_page=per_page,
    )


@router.get("/sheet", response_model=AttendanceSheetResponse)
async def attendance_sheet(
    schedule_id: UUID = Query(...),
    on_date: Optional[date] = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
):
    """Enrolled students of the lesson with their recorded status (absent when unrecorded)."""
    try:
        return await service.attendance_sheet(db, current_user, schedule_id, on_date)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post("", response_model=AttendanceBatchResult)
async def record_attendance(
    payload: AttendanceBatchCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Record or correct attendance for one lesson on one date."""
    try:
        return await service.record_attendance(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/report", response_model=AttendanceReport, dependencies=[Depends(require_staff)])
async def attendance_report(
    report_type: Literal["class", "student"] = Query("class", alias="type"),
    target_id: UUID = Query(..., alias="id"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
    scope: ScopedQuery = Depends(get_scope),
):
    """Defaults to the current month."""
    try:
        return await service.attendance_report(db, scope, report_type, target_id, date_from, date_to)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
