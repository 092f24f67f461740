import logging
from datetime import date
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from school_attendance.auth.models import User
from school_attendance.core.enums import UserRole
from school_attendance.core.exceptions import ConflictError, NotFoundError, ValidationError
from school_attendance.core.models import ClassEnrollment, Schedule, SchoolClass, day_of_week_order
from school_attendance.core.pagination import paginate
from school_attendance.core.schemas import Page

from school_attendance.api.v1.schedules.schemas import format_time_24

from .schemas import (
    ClassCreate,
    ClassDetailResponse,
    ClassResponse,
    ClassScheduleItem,
    ClassStudentItem,
    ClassUpdate,
    EnrollmentResponse,
)

logger = logging.getLogger(__name__)


def _class_to_response(c: SchoolClass, students_count: int = 0, response_cls=ClassResponse, **extra) -> ClassResponse:
    return response_cls(
        id=c.id,
        name=c.name,
        grade=c.grade,
        description=c.description,
        is_active=c.is_active,
        students_count=students_count,
        created_at=c.created_at,
        updated_at=c.updated_at,
        **extra,
    )


async def _student_counts(db: AsyncSession, class_ids: Iterable[UUID]) -> Dict[UUID, int]:
    ids = list(class_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(ClassEnrollment.class_id, func.count(ClassEnrollment.id))
        .where(ClassEnrollment.class_id.in_(ids))
        .group_by(ClassEnrollment.class_id)
    )
    return {class_id: count for class_id, count in result.all()}


async def _name_taken(db: AsyncSession, name: str, exclude_class_id: Optional[UUID] = None) -> bool:
    stmt = select(SchoolClass.id).where(SchoolClass.name == name)
    if exclude_class_id is not None:
        stmt = stmt.where(SchoolClass.id != exclude_class_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


async def create_class(db: AsyncSession, payload: ClassCreate) -> ClassResponse:
    name = payload.name.strip()
    if await _name_taken(db, name):
        raise ConflictError("Class name already exists", field="name")
    obj = SchoolClass(
        name=name,
        grade=payload.grade.strip(),
        description=payload.description,
        is_active=payload.is_active,
    )
    db.add(obj)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Class name already exists", field="name")
    await db.refresh(obj)
    logger.info("Class %s (%s) created", obj.id, obj.name)
    return _class_to_response(obj)


async def list_classes(
    db: AsyncSession,
    grade: Optional[str] = None,
    search: Optional[str] = None,
    active_only: bool = False,
    page: int = 1,
    per_page: int = 15,
) -> Page[ClassResponse]:
    stmt = select(SchoolClass)
    if grade:
        stmt = stmt.where(SchoolClass.grade == grade)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(SchoolClass.name.ilike(like), SchoolClass.grade.ilike(like)))
    if active_only:
        stmt = stmt.where(SchoolClass.is_active.is_(True))
    stmt = stmt.order_by(SchoolClass.created_at.desc(), SchoolClass.name)
    rows, total = await paginate(db, stmt, page, per_page)
    counts = await _student_counts(db, (c.id for c in rows))
    return Page.build([_class_to_response(c, counts.get(c.id, 0)) for c in rows], total, page, per_page)


async def get_class(db: AsyncSession, class_id: UUID) -> ClassDetailResponse:
    result = await db.execute(
        select(SchoolClass)
        .options(
            selectinload(SchoolClass.enrollments).selectinload(ClassEnrollment.student),
            selectinload(SchoolClass.schedules).selectinload(Schedule.subject),
            selectinload(SchoolClass.schedules).selectinload(Schedule.teacher),
        )
        .where(SchoolClass.id == class_id)
        .execution_options(populate_existing=True)
    )
    obj = result.scalar_one_or_none()
    if not obj:
        raise NotFoundError("Class not found")

    students = sorted(
        (
            ClassStudentItem(
                id=e.student.id,
                name=e.student.name,
                email=e.student.email,
                student_number=e.student.student_number,
                enrolled_at=e.enrolled_at,
                is_active=e.is_active,
            )
            for e in obj.enrollments
        ),
        key=lambda s: s.name,
    )
    schedule_rows = (
        await db.execute(
            select(Schedule.id)
            .where(Schedule.class_id == class_id)
            .order_by(day_of_week_order, Schedule.start_time)
        )
    ).scalars().all()
    by_id = {s.id: s for s in obj.schedules}
    schedules = [
        ClassScheduleItem(
            id=s.id,
            subject_name=s.subject.name,
            teacher_name=s.teacher.name,
            day_of_week=s.day_of_week,
            start_time=format_time_24(s.start_time),
            end_time=format_time_24(s.end_time),
            room=s.room,
            is_active=s.is_active,
        )
        for s in (by_id[sid] for sid in schedule_rows)
    ]
    return _class_to_response(
        obj,
        len(obj.enrollments),
        ClassDetailResponse,
        students=students,
        schedules=schedules,
    )


async def update_class(db: AsyncSession, class_id: UUID, payload: ClassUpdate) -> ClassDetailResponse:
    obj = await db.get(SchoolClass, class_id)
    if not obj:
        raise NotFoundError("Class not found")
    if payload.name is not None:
        name = payload.name.strip()
        if await _name_taken(db, name, exclude_class_id=class_id):
            raise ConflictError("Class name already exists", field="name")
        obj.name = name
    if payload.grade is not None:
        obj.grade = payload.grade.strip()
    if payload.description is not None:
        obj.description = payload.description
    if payload.is_active is not None:
        obj.is_active = payload.is_active
    if payload.student_ids is not None:
        await sync_class_students(db, class_id, payload.student_ids)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Class name already exists", field="name")
    logger.info("Class %s updated", class_id)
    return await get_class(db, class_id)


async def delete_class(db: AsyncSession, class_id: UUID) -> bool:
    obj = await db.get(SchoolClass, class_id)
    if not obj:
        return False
    enrolled = (
        await db.execute(select(func.count(ClassEnrollment.id)).where(ClassEnrollment.class_id == class_id))
    ).scalar_one()
    scheduled = (
        await db.execute(select(func.count(Schedule.id)).where(Schedule.class_id == class_id))
    ).scalar_one()
    if enrolled or scheduled:
        logger.warning(
            "Refused to delete class %s: %d enrollments, %d schedules", class_id, enrolled, scheduled
        )
        raise ConflictError("Cannot delete class with active schedules or enrolled students.")
    await db.delete(obj)
    await db.commit()
    logger.info("Class %s deleted", class_id)
    return True


# ----- Enrollment -----
async def _require_students(db: AsyncSession, student_ids: List[UUID], field: str) -> None:
    if not student_ids:
        return
    result = await db.execute(
        select(User.id).where(User.id.in_(student_ids), User.role == UserRole.STUDENT.value)
    )
    found = set(result.scalars().all())
    missing = [str(sid) for sid in student_ids if sid not in found]
    if missing:
        raise ValidationError(f"Not a student: {', '.join(missing)}", field=field)


async def _require_classes(db: AsyncSession, class_ids: List[UUID], field: str) -> None:
    if not class_ids:
        return
    result = await db.execute(select(SchoolClass.id).where(SchoolClass.id.in_(class_ids)))
    found = set(result.scalars().all())
    missing = [str(cid) for cid in class_ids if cid not in found]
    if missing:
        raise ValidationError(f"Selected class does not exist: {', '.join(missing)}", field=field)


async def _apply_sync(
    db: AsyncSession,
    existing: List[ClassEnrollment],
    wanted: List[UUID],
    key: str,
    make,
) -> None:
    """Remove enrollments not wanted, re-activate kept ones, add the new ones (enrolled today)."""
    wanted_set = set(wanted)
    have = {getattr(e, key): e for e in existing}
    for other_id, enrollment in have.items():
        if other_id in wanted_set:
            enrollment.is_active = True
        else:
            await db.delete(enrollment)
    for other_id in dict.fromkeys(wanted):
        if other_id not in have:
            db.add(make(other_id))


async def sync_class_students(db: AsyncSession, class_id: UUID, student_ids: List[UUID]) -> None:
    """Make student_ids exactly the set of students enrolled in the class. Caller commits."""
    await _require_students(db, student_ids, "student_ids")
    existing = (
        await db.execute(select(ClassEnrollment).where(ClassEnrollment.class_id == class_id))
    ).scalars().all()
    await _apply_sync(
        db,
        list(existing),
        student_ids,
        "student_id",
        lambda sid: ClassEnrollment(class_id=class_id, student_id=sid, enrolled_at=date.today(), is_active=True),
    )


async def sync_student_classes(db: AsyncSession, student_id: UUID, class_ids: List[UUID]) -> None:
    """Make class_ids exactly the set of classes the student is enrolled in. Caller commits."""
    await _require_classes(db, class_ids, "class_ids")
    existing = (
        await db.execute(select(ClassEnrollment).where(ClassEnrollment.student_id == student_id))
    ).scalars().all()
    await _apply_sync(
        db,
        list(existing),
        class_ids,
        "class_id",
        lambda cid: ClassEnrollment(class_id=cid, student_id=student_id, enrolled_at=date.today(), is_active=True),
    )


async def set_enrollment_active(
    db: AsyncSession,
    class_id: UUID,
    student_id: UUID,
    is_active: bool,
) -> EnrollmentResponse:
    result = await db.execute(
        select(ClassEnrollment).where(
            ClassEnrollment.class_id == class_id,
            ClassEnrollment.student_id == student_id,
        )
    )
    enrollment = result.scalar_one_or_none()
    if not enrollment:
        raise NotFoundError("Student is not enrolled in this class")
    enrollment.is_active = is_active
    await db.commit()
    logger.info(
        "Enrollment of student %s in class %s set %s",
        student_id,
        class_id,
        "active" if is_active else "inactive",
    )
    return EnrollmentResponse(
        class_id=enrollment.class_id,
        student_id=enrollment.student_id,
        enrolled_at=enrollment.enrolled_at,
        is_active=enrollment.is_active,
    )
