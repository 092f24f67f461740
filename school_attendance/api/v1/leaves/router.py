from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.auth.dependencies import get_current_user, get_scope
from school_attendance.auth.rbac import require_staff, require_student
from school_attendance.auth.schemas import CurrentUser
from school_attendance.core.enums import LeaveStatus, LeaveType
from school_attendance.core.exceptions import ServiceError
from school_attendance.core.schemas import Page
from school_attendance.core.scopes import ScopedQuery
from school_attendance.core.storage import EvidenceStorage, get_evidence_storage
from school_attendance.db.session import get_db

from .schemas import LeaveRequestResponse, LeaveReview
from . import service

router = APIRouter(prefix="/api/v1/leave-requests", tags=["leave-requests"])


@router.get("", response_model=Page[LeaveRequestResponse])
async def list_leave_requests(
    status_filter: Optional[LeaveStatus] = Query(None, alias="status"),
    student_id: Optional[UUID] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    scope: ScopedQuery = Depends(get_scope),
):
    """Students: own requests. Staff: all, filterable by status and student."""
    return await service.list_leave_requests(
        db, scope, status=status_filter, student_id=student_id, page=page, per_page=per_page
    )


@router.post("", response_model=LeaveRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_leave_request(
    from_date: date = Form(...),
    to_date: date = Form(...),
    leave_type: LeaveType = Form(..., alias="type"),
    reason: str = Form(...),
    evidence_file: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    storage: EvidenceStorage = Depends(get_evidence_storage),
    current_user: CurrentUser = Depends(require_student),
):
    try:
        payload = service.parse_submission(from_date, to_date, leave_type, reason)
        return await service.submit_leave_request(db, storage, current_user, payload, evidence_file)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/{leave_id}", response_model=LeaveRequestResponse)
async def get_leave_request(
    leave_id: UUID,
    db: AsyncSession = Depends(get_db),
    scope: ScopedQuery = Depends(get_scope),
):
    try:
        return await service.get_leave_request(db, scope, leave_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/{leave_id}/evidence")
async def download_evidence(
    leave_id: UUID,
    db: AsyncSession = Depends(get_db),
    storage: EvidenceStorage = Depends(get_evidence_storage),
    scope: ScopedQuery = Depends(get_scope),
):
    try:
        path = await service.evidence_location(db, storage, scope, leave_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return FileResponse(path, filename=path.name)


@router.put("/{leave_id}/review", response_model=LeaveRequestResponse)
async def review_leave_request(
    leave_id: UUID,
    payload: LeaveReview,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_staff),
):
    """Approve or reject a pending request. Already reviewed requests answer 409."""
    try:
        return await service.review_leave_request(db, current_user, leave_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.delete("/{leave_id}", status_code=status.HTTP_204_NO_CONTENT)
async def withdraw_leave_request(
    leave_id: UUID,
    db: AsyncSession = Depends(get_db),
    storage: EvidenceStorage = Depends(get_evidence_storage),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        await service.withdraw_leave_request(db, storage, current_user, leave_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
