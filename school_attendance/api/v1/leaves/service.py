"""
Leave request workflow.

    pending --approve--> approved
    pending --reject---> rejected

Approved and rejected are terminal. Only pending requests may be withdrawn.
"""

import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional
from uuid import UUID

from fastapi import UploadFile
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_attendance.auth.schemas import CurrentUser
from school_attendance.core.enums import LeaveStatus, LeaveType
from school_attendance.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from school_attendance.core.models import LeaveRequest
from school_attendance.core.pagination import paginate
from school_attendance.core.schemas import Page
from school_attendance.core.scopes import ScopedQuery
from school_attendance.core.storage import EvidenceStorage

from .schemas import LeaveRequestCreate, LeaveRequestResponse, LeaveReview

logger = logging.getLogger(__name__)

_WITH_PEOPLE = (selectinload(LeaveRequest.student), selectinload(LeaveRequest.reviewer))


def leave_to_response(lr: LeaveRequest) -> LeaveRequestResponse:
    return LeaveRequestResponse(
        id=lr.id,
        student_id=lr.student_id,
        student_name=lr.student.name if lr.student else None,
        from_date=lr.from_date,
        to_date=lr.to_date,
        days=(lr.to_date - lr.from_date).days + 1,
        type=LeaveType(lr.type),
        reason=lr.reason,
        evidence_file=lr.evidence_file,
        status=LeaveStatus(lr.status),
        admin_notes=lr.admin_notes,
        reviewed_by=lr.reviewed_by,
        reviewer_name=lr.reviewer.name if lr.reviewer else None,
        reviewed_at=lr.reviewed_at,
        created_at=lr.created_at,
        updated_at=lr.updated_at,
    )


def parse_submission(
    from_date: date,
    to_date: date,
    leave_type: LeaveType,
    reason: str,
    today: Optional[date] = None,
) -> LeaveRequestCreate:
    """Validate submitted form fields; every failure is a field-level ValidationError."""
    today = today or date.today()
    if from_date < today:
        raise ValidationError("Leave cannot start in the past", field="from_date")
    if to_date < from_date:
        raise ValidationError("to_date must be on or after from_date", field="to_date")
    reason = (reason or "").strip()
    try:
        return LeaveRequestCreate(from_date=from_date, to_date=to_date, type=leave_type, reason=reason)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else None
        raise ValidationError(first["msg"], field=field) from e


async def _load(db: AsyncSession, leave_id: UUID) -> Optional[LeaveRequest]:
    result = await db.execute(
        select(LeaveRequest)
        .options(*_WITH_PEOPLE)
        .where(LeaveRequest.id == leave_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def submit_leave_request(
    db: AsyncSession,
    storage: EvidenceStorage,
    current_user: CurrentUser,
    payload: LeaveRequestCreate,
    evidence: Optional[UploadFile] = None,
) -> LeaveRequestResponse:
    """Create a pending request for the calling student, storing the evidence file if given."""
    if not current_user.is_student:
        raise AuthorizationError("Only students can create leave requests.")

    async with storage.staged(evidence) as evidence_path:
        obj = LeaveRequest(
            student_id=current_user.id,
            from_date=payload.from_date,
            to_date=payload.to_date,
            type=payload.type.value,
            reason=payload.reason,
            evidence_file=evidence_path,
            status=LeaveStatus.PENDING.value,
        )
        db.add(obj)
        try:
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    logger.info(
        "Leave request %s submitted by student %s (%s to %s)",
        obj.id,
        current_user.id,
        payload.from_date,
        payload.to_date,
    )
    return leave_to_response(await _load(db, obj.id))


async def review_leave_request(
    db: AsyncSession,
    current_user: CurrentUser,
    leave_id: UUID,
    payload: LeaveReview,
) -> LeaveRequestResponse:
    if not current_user.is_staff:
        raise AuthorizationError("Only admins and teachers can review leave requests.")
    obj = await _load(db, leave_id)
    if not obj:
        raise NotFoundError("Leave request not found")
    if obj.status != LeaveStatus.PENDING.value:
        logger.warning(
            "Refused to review leave request %s: already %s", leave_id, obj.status
        )
        raise ConflictError(f"Leave request has already been {obj.status}.", field="status")

    obj.status = payload.status
    obj.admin_notes = payload.admin_notes
    obj.reviewed_by = current_user.id
    obj.reviewed_at = datetime.now(timezone.utc)
    await db.commit()
    logger.info("Leave request %s %s by %s", leave_id, payload.status, current_user.id)
    return leave_to_response(await _load(db, leave_id))


async def withdraw_leave_request(
    db: AsyncSession,
    storage: EvidenceStorage,
    current_user: CurrentUser,
    leave_id: UUID,
) -> None:
    """
    Delete a request and its evidence file.

    Students may delete only their own pending requests; admins any. The file
    goes first: if it cannot be removed the row is left untouched.
    """
    obj = await db.get(LeaveRequest, leave_id)
    if not obj:
        raise NotFoundError("Leave request not found")
    if current_user.is_student:
        if obj.student_id != current_user.id or obj.status != LeaveStatus.PENDING.value:
            raise AuthorizationError("You can only delete your own pending requests.")
    elif not current_user.is_admin:
        raise AuthorizationError("You can only delete your own pending requests.")

    if obj.evidence_file:
        try:
            removed = storage.delete(obj.evidence_file)
        except OSError as e:
            logger.error("Failed to delete evidence file %s", obj.evidence_file, exc_info=True)
            raise ServiceError("Could not delete evidence file; leave request kept") from e
        if not removed:
            logger.info("Evidence file %s already gone", obj.evidence_file)

    await db.delete(obj)
    await db.commit()
    logger.info("Leave request %s withdrawn by %s", leave_id, current_user.id)


async def list_leave_requests(
    db: AsyncSession,
    scope: ScopedQuery,
    status: Optional[LeaveStatus] = None,
    student_id: Optional[UUID] = None,
    page: int = 1,
    per_page: int = 10,
) -> Page[LeaveRequestResponse]:
    stmt = scope.leave_requests(select(LeaveRequest))
    if status:
        stmt = stmt.where(LeaveRequest.status == status.value)
    if student_id:
        stmt = stmt.where(LeaveRequest.student_id == student_id)
    stmt = stmt.options(*_WITH_PEOPLE).order_by(LeaveRequest.created_at.desc())
    rows, total = await paginate(db, stmt, page, per_page)
    return Page.build([leave_to_response(lr) for lr in rows], total, page, per_page)


async def _visible(db: AsyncSession, scope: ScopedQuery, leave_id: UUID) -> LeaveRequest:
    stmt = scope.leave_requests(select(LeaveRequest).options(*_WITH_PEOPLE).where(LeaveRequest.id == leave_id))
    obj = (await db.execute(stmt)).scalar_one_or_none()
    if not obj:
        raise NotFoundError("Leave request not found")
    return obj


async def get_leave_request(db: AsyncSession, scope: ScopedQuery, leave_id: UUID) -> LeaveRequestResponse:
    return leave_to_response(await _visible(db, scope, leave_id))


async def evidence_location(
    db: AsyncSession,
    storage: EvidenceStorage,
    scope: ScopedQuery,
    leave_id: UUID,
) -> Path:
    """Filesystem path of the request's evidence file, for streaming back to the client."""
    obj = await _visible(db, scope, leave_id)
    if not obj.evidence_file or not storage.exists(obj.evidence_file):
        raise NotFoundError("No evidence file attached")
    return storage.resolve(obj.evidence_file)
