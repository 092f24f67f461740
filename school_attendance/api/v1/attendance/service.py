"""
Attendance ledger.

Rows are keyed by (student, schedule, date). Writes go through
``upsert_attendance``, which reports whether it inserted or updated, and the
unique constraint on the table stays the final word when two writers race.
"""

import calendar
import logging
from collections import OrderedDict
from datetime import date
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_attendance.auth.models import User
from school_attendance.auth.schemas import CurrentUser
from school_attendance.core.enums import AttendanceStatus, UserRole
from school_attendance.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from school_attendance.core.models import Attendance, Schedule, SchoolClass, Subject
from school_attendance.core.pagination import paginate
from school_attendance.core.schemas import Page
from school_attendance.core.scopes import ScopedQuery, TeacherScope

from school_attendance.api.v1.schedules.service import enrolled_students, load_schedule, schedule_to_response

from .schemas import (
    AttendanceBatchCreate,
    AttendanceBatchResult,
    AttendanceFailure,
    AttendanceReport,
    AttendanceResponse,
    AttendanceSheetResponse,
    AttendanceSheetStudent,
    ReportStudentRow,
    ReportSubjectRow,
    StatusCounts,
)

logger = logging.getLogger(__name__)

_WITH_REFS = (
    selectinload(Attendance.student),
    selectinload(Attendance.recorder),
    selectinload(Attendance.schedule).selectinload(Schedule.school_class),
    selectinload(Attendance.schedule).selectinload(Schedule.subject),
)


def attendance_to_response(a: Attendance) -> AttendanceResponse:
    schedule = a.schedule
    return AttendanceResponse(
        id=a.id,
        student_id=a.student_id,
        student_name=a.student.name if a.student else None,
        student_number=a.student.student_number if a.student else None,
        schedule_id=a.schedule_id,
        class_name=schedule.school_class.name if schedule and schedule.school_class else None,
        subject_name=schedule.subject.name if schedule and schedule.subject else None,
        date=a.date,
        status=AttendanceStatus(a.status),
        notes=a.notes,
        recorded_by=a.recorded_by,
        recorder_name=a.recorder.name if a.recorder else None,
        created_at=a.created_at,
        updated_at=a.updated_at,
    )


async def _find_attendance(db: AsyncSession, student_id: UUID, schedule_id: UUID, on_date: date) -> Optional[Attendance]:
    result = await db.execute(
        select(Attendance).where(
            Attendance.student_id == student_id,
            Attendance.schedule_id == schedule_id,
            Attendance.date == on_date,
        )
    )
    return result.scalar_one_or_none()


async def upsert_attendance(
    db: AsyncSession,
    *,
    student_id: UUID,
    schedule_id: UUID,
    on_date: date,
    status: AttendanceStatus,
    notes: Optional[str],
    recorded_by: UUID,
) -> Tuple[Attendance, bool]:
    """
    Insert or update the single row for (student, schedule, date).

    Runs inside its own savepoint so one failing entry never rolls back the
    others. Returns (row, inserted). If a concurrent writer inserts the same
    key first, the unique constraint fires and the write is retried as an
    update. The caller commits.
    """
    try:
        async with db.begin_nested():
            row = await _find_attendance(db, student_id, schedule_id, on_date)
            if row is None:
                row = Attendance(
                    student_id=student_id,
                    schedule_id=schedule_id,
                    date=on_date,
                    status=status.value,
                    notes=notes,
                    recorded_by=recorded_by,
                )
                db.add(row)
                await db.flush()
                return row, True
            row.status = status.value
            row.notes = notes
            row.recorded_by = recorded_by
            await db.flush()
            return row, False
    except IntegrityError:
        logger.info(
            "Attendance for student %s on %s inserted concurrently, updating instead", student_id, on_date
        )
        async with db.begin_nested():
            row = await _find_attendance(db, student_id, schedule_id, on_date)
            if row is None:
                raise
            row.status = status.value
            row.notes = notes
            row.recorded_by = recorded_by
            await db.flush()
            return row, False


async def _recordable_schedule(db: AsyncSession, current_user: CurrentUser, schedule_id: UUID) -> Schedule:
    if not current_user.is_staff:
        raise AuthorizationError("Only teachers and admins can record attendance.")
    schedule = await load_schedule(db, schedule_id)
    if not schedule:
        raise NotFoundError("Schedule not found", field="schedule_id")
    if current_user.is_teacher and schedule.teacher_id != current_user.id:
        raise AuthorizationError("You can only record attendance for your own classes.")
    return schedule


async def record_attendance(
    db: AsyncSession,
    current_user: CurrentUser,
    payload: AttendanceBatchCreate,
) -> AttendanceBatchResult:
    """Upsert every entry of the batch, stamping the caller as recorder."""
    schedule = await _recordable_schedule(db, current_user, payload.schedule_id)
    enrolled = {u.id for u in await enrolled_students(db, schedule.class_id)}
    known_students = set(
        (
            await db.execute(
                select(User.id).where(
                    User.id.in_([e.student_id for e in payload.attendance]),
                    User.role == UserRole.STUDENT.value,
                )
            )
        ).scalars().all()
    )

    result = AttendanceBatchResult()
    written: List[UUID] = []
    for entry in payload.attendance:
        if entry.student_id not in known_students:
            result.failed.append(AttendanceFailure(student_id=entry.student_id, error="Selected student does not exist."))
            continue
        if entry.student_id not in enrolled:
            result.failed.append(
                AttendanceFailure(student_id=entry.student_id, error="Student is not actively enrolled in this class.")
            )
            continue
        try:
            row, inserted = await upsert_attendance(
                db,
                student_id=entry.student_id,
                schedule_id=schedule.id,
                on_date=payload.date,
                status=entry.status,
                notes=entry.notes,
                recorded_by=current_user.id,
            )
        except SQLAlchemyError:
            logger.exception("Failed to record attendance for student %s", entry.student_id)
            result.failed.append(AttendanceFailure(student_id=entry.student_id, error="Could not save attendance."))
            continue
        written.append(row.id)
        if inserted:
            result.inserted += 1
        else:
            result.updated += 1

    await db.commit()
    logger.info(
        "Attendance recorded for schedule %s on %s by %s: %d inserted, %d updated, %d failed",
        schedule.id,
        payload.date,
        current_user.id,
        result.inserted,
        result.updated,
        len(result.failed),
    )

    if written:
        rows = await db.execute(
            select(Attendance)
            .options(*_WITH_REFS)
            .where(Attendance.id.in_(written))
            .execution_options(populate_existing=True)
        )
        by_id = {a.id: a for a in rows.scalars().all()}
        result.records = [attendance_to_response(by_id[i]) for i in written if i in by_id]
    return result


async def attendance_sheet(
    db: AsyncSession,
    current_user: CurrentUser,
    schedule_id: UUID,
    on_date: Optional[date] = None,
) -> AttendanceSheetResponse:
    """Take-attendance view: every actively enrolled student with the stored or default status."""
    on_date = on_date or date.today()
    schedule = await _recordable_schedule(db, current_user, schedule_id)
    students = await enrolled_students(db, schedule.class_id)
    existing = (
        await db.execute(
            select(Attendance).where(Attendance.schedule_id == schedule_id, Attendance.date == on_date)
        )
    ).scalars().all()
    by_student = {a.student_id: a for a in existing}

    items = []
    for student in students:
        row = by_student.get(student.id)
        items.append(
            AttendanceSheetStudent(
                id=student.id,
                name=student.name,
                student_number=student.student_number,
                status=AttendanceStatus(row.status) if row else AttendanceStatus.ABSENT,
                notes=(row.notes or "") if row else "",
                recorded=row is not None,
            )
        )
    return AttendanceSheetResponse(schedule=schedule_to_response(schedule), date=on_date, students=items)


async def list_attendance(
    db: AsyncSession,
    scope: ScopedQuery,
    class_id: Optional[UUID] = None,
    subject_id: Optional[UUID] = None,
    on_date: Optional[date] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[AttendanceStatus] = None,
    search: Optional[str] = None,
    page: int = 1,
    per_page: int = 20,
) -> Page[AttendanceResponse]:
    stmt = (
        select(Attendance)
        .join(Schedule, Attendance.schedule_id == Schedule.id)
        .join(User, Attendance.student_id == User.id)
    )
    stmt = scope.attendance(stmt)
    if class_id:
        stmt = stmt.where(Schedule.class_id == class_id)
    if subject_id:
        stmt = stmt.where(Schedule.subject_id == subject_id)
    if on_date:
        stmt = stmt.where(Attendance.date == on_date)
    if date_from:
        stmt = stmt.where(Attendance.date >= date_from)
    if date_to:
        stmt = stmt.where(Attendance.date <= date_to)
    if status:
        stmt = stmt.where(Attendance.status == status.value)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(User.name.ilike(like), User.student_number.ilike(like)))
    stmt = stmt.options(*_WITH_REFS).order_by(Attendance.created_at.desc(), Attendance.date.desc())
    rows, total = await paginate(db, stmt, page, per_page)
    return Page.build([attendance_to_response(a) for a in rows], total, page, per_page)


def current_month(today: date) -> Tuple[date, date]:
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last_day)


async def _teaches_class(db: AsyncSession, teacher_id: UUID, class_id: UUID) -> bool:
    stmt = select(Schedule.id).where(Schedule.teacher_id == teacher_id, Schedule.class_id == class_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


async def attendance_report(
    db: AsyncSession,
    scope: ScopedQuery,
    report_type: str,
    target_id: UUID,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    today: Optional[date] = None,
) -> AttendanceReport:
    """Per-student, per-subject status counts for one class or one student over a date range."""
    default_from, default_to = current_month(today or date.today())
    date_from = date_from or default_from
    date_to = date_to or default_to
    if date_to < date_from:
        raise ValidationError("date_to must be on or after date_from", field="date_to")

    stmt = (
        select(Attendance.student_id, Subject.name, Attendance.status, func.count(Attendance.id))
        .join(Schedule, Attendance.schedule_id == Schedule.id)
        .join(Subject, Schedule.subject_id == Subject.id)
        .where(Attendance.date >= date_from, Attendance.date <= date_to)
    )
    stmt = scope.attendance(stmt)

    students: "OrderedDict[UUID, ReportStudentRow]" = OrderedDict()
    if report_type == "class":
        school_class = await db.get(SchoolClass, target_id)
        if not school_class:
            raise NotFoundError("Class not found")
        if isinstance(scope, TeacherScope) and not await _teaches_class(db, scope.user_id, target_id):
            raise AuthorizationError("You do not teach this class.")
        name = school_class.name
        stmt = stmt.where(Schedule.class_id == target_id)
        for u in await enrolled_students(db, target_id):
            students[u.id] = ReportStudentRow(student_id=u.id, student_name=u.name, student_number=u.student_number)
    elif report_type == "student":
        student = await db.get(User, target_id)
        if not student or student.role != UserRole.STUDENT.value:
            raise NotFoundError("Student not found")
        name = student.name
        stmt = stmt.where(Attendance.student_id == target_id)
        students[student.id] = ReportStudentRow(
            student_id=student.id, student_name=student.name, student_number=student.student_number
        )
    else:
        raise ValidationError("type must be 'class' or 'student'", field="type")

    stmt = stmt.group_by(Attendance.student_id, Subject.name, Attendance.status)
    counts: Dict[UUID, Dict[str, StatusCounts]] = {}
    missing: List[UUID] = []
    for student_id, subject_name, status, count in (await db.execute(stmt)).all():
        per_subject = counts.setdefault(student_id, {})
        per_subject.setdefault(subject_name, StatusCounts()).add(status, count)
        if student_id not in students and student_id not in missing:
            missing.append(student_id)

    # Students with history in the range but no longer actively enrolled
    if missing:
        for u in (await db.execute(select(User).where(User.id.in_(missing)).order_by(User.name))).scalars():
            students[u.id] = ReportStudentRow(student_id=u.id, student_name=u.name, student_number=u.student_number)

    for student_id, row in students.items():
        for subject_name in sorted(counts.get(student_id, {})):
            subject_counts = counts[student_id][subject_name]
            row.subjects.append(ReportSubjectRow(subject_name=subject_name, counts=subject_counts))
            for status in AttendanceStatus:
                row.totals.add(status.value, getattr(subject_counts, status.value))

    return AttendanceReport(
        type=report_type,
        id=target_id,
        name=name,
        date_from=date_from,
        date_to=date_to,
        students=list(students.values()),
    )
