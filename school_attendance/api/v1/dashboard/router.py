from datetime import date
from typing import Union

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.auth.dependencies import get_scope
from school_attendance.core.scopes import ScopedQuery
from school_attendance.db.session import get_db

from .schemas import AdminDashboard, StudentDashboard, TeacherDashboard
from . import service

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


@router.get("", response_model=Union[AdminDashboard, TeacherDashboard, StudentDashboard])
async def dashboard(
    db: AsyncSession = Depends(get_db),
    scope: ScopedQuery = Depends(get_scope),
):
    """Role-specific overview; the `role` field tells which shape was returned."""
    return await service.dashboard_for(db, scope, date.today())
