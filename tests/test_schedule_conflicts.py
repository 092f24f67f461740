from datetime import time
from types import SimpleNamespace
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.api.v1.schedules.conflicts import (
    find_conflicting_schedule,
    first_overlapping,
    has_schedule_conflict,
    intervals_overlap,
)
from school_attendance.core.enums import DayOfWeek
from school_attendance.core.models import Schedule

from conftest import auth_headers, make_schedule


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((time(8, 0), time(9, 0)), (time(8, 30), time(9, 30)), True),
        ((time(8, 0), time(9, 0)), (time(9, 0), time(10, 0)), False),
        ((time(9, 0), time(10, 0)), (time(8, 0), time(9, 0)), False),
        ((time(8, 0), time(12, 0)), (time(9, 0), time(10, 0)), True),
        ((time(8, 0), time(9, 0)), (time(8, 0), time(9, 0)), True),
        ((time(8, 0), time(9, 0)), (time(13, 0), time(14, 0)), False),
    ],
)
def test_intervals_overlap(a, b, expected) -> None:
    assert intervals_overlap(a[0], a[1], b[0], b[1]) is expected
    assert intervals_overlap(b[0], b[1], a[0], a[1]) is expected


def test_first_overlapping_skips_inactive_and_excluded() -> None:
    inactive = SimpleNamespace(id=uuid4(), start_time=time(8, 0), end_time=time(9, 0), is_active=False)
    itself = SimpleNamespace(id=uuid4(), start_time=time(8, 0), end_time=time(9, 0), is_active=True)
    assert first_overlapping(time(8, 30), time(9, 30), [inactive]) is None
    assert first_overlapping(time(8, 30), time(9, 30), [itself], exclude_schedule_id=itself.id) is None
    assert first_overlapping(time(8, 30), time(9, 30), [inactive, itself]) is itself


@pytest.mark.asyncio
async def test_find_conflicting_schedule(db_session: AsyncSession, school_class, subject, teacher) -> None:
    existing = await make_schedule(db_session, school_class, subject, teacher)

    found = await find_conflicting_schedule(db_session, teacher.id, DayOfWeek.MONDAY, time(8, 30), time(9, 30))
    assert found is not None and found.id == existing.id

    assert not await has_schedule_conflict(db_session, teacher.id, DayOfWeek.MONDAY, time(9, 0), time(10, 0))
    assert not await has_schedule_conflict(db_session, teacher.id, DayOfWeek.TUESDAY, time(8, 30), time(9, 30))
    assert not await has_schedule_conflict(
        db_session, teacher.id, DayOfWeek.MONDAY, time(8, 30), time(9, 30), exclude_schedule_id=existing.id
    )


@pytest.mark.asyncio
async def test_inactive_schedule_does_not_conflict(db_session: AsyncSession, school_class, subject, teacher) -> None:
    await make_schedule(db_session, school_class, subject, teacher, is_active=False)
    assert not await has_schedule_conflict(db_session, teacher.id, DayOfWeek.MONDAY, time(8, 0), time(9, 0))


def _payload(school_class, subject, teacher, start: str, end: str, day: str = "monday") -> dict:
    return {
        "class_id": str(school_class.id),
        "subject_id": str(subject.id),
        "teacher_id": str(teacher.id),
        "day_of_week": day,
        "start_time": start,
        "end_time": end,
        "room": "Room 204",
    }


@pytest.mark.asyncio
async def test_create_schedule_rejects_overlap_and_accepts_back_to_back(
    client: AsyncClient, db_session: AsyncSession, admin, school_class, subject, teacher
) -> None:
    headers = auth_headers(admin)

    first = await client.post("/api/v1/schedules", json=_payload(school_class, subject, teacher, "08:00", "09:00"), headers=headers)
    assert first.status_code == 201
    assert first.json()["start_time"] == "08:00"
    assert first.json()["teacher_name"] == teacher.name

    overlapping = await client.post(
        "/api/v1/schedules", json=_payload(school_class, subject, teacher, "08:30", "09:30"), headers=headers
    )
    assert overlapping.status_code == 422
    detail = overlapping.json()["detail"]
    assert detail["field"] == "teacher_id"
    assert "conflicting schedule" in detail["message"]

    back_to_back = await client.post(
        "/api/v1/schedules", json=_payload(school_class, subject, teacher, "09:00", "10:00"), headers=headers
    )
    assert back_to_back.status_code == 201

    count = (await db_session.execute(select(func.count(Schedule.id)))).scalar_one()
    assert count == 2


@pytest.mark.asyncio
async def test_other_teacher_same_slot_is_fine(
    client: AsyncClient, admin, school_class, subject, teacher, other_teacher
) -> None:
    headers = auth_headers(admin)
    await client.post("/api/v1/schedules", json=_payload(school_class, subject, teacher, "08:00", "09:00"), headers=headers)
    response = await client.post(
        "/api/v1/schedules", json=_payload(school_class, subject, other_teacher, "08:00", "09:00"), headers=headers
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_update_does_not_conflict_with_itself(client: AsyncClient, admin, schedule, school_class, subject, teacher) -> None:
    response = await client.put(
        f"/api/v1/schedules/{schedule.id}",
        json=_payload(school_class, subject, teacher, "08:15", "09:15"),
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    assert response.json()["start_time"] == "08:15"


@pytest.mark.asyncio
async def test_update_into_overlap_rejected(
    client: AsyncClient, db_session: AsyncSession, admin, schedule, school_class, subject, teacher
) -> None:
    later = await make_schedule(db_session, school_class, subject, teacher, start=time(10, 0), end=time(11, 0))
    response = await client.put(
        f"/api/v1/schedules/{later.id}",
        json=_payload(school_class, subject, teacher, "08:45", "09:45"),
        headers=auth_headers(admin),
    )
    assert response.status_code == 422

    await db_session.refresh(later)
    assert later.start_time == time(10, 0)


@pytest.mark.asyncio
async def test_inactive_schedule_skips_conflict_check(client: AsyncClient, admin, schedule, school_class, subject, teacher) -> None:
    payload = _payload(school_class, subject, teacher, "08:30", "09:30")
    payload["is_active"] = False
    response = await client.post("/api/v1/schedules", json=payload, headers=auth_headers(admin))
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_end_must_follow_start(client: AsyncClient, admin, school_class, subject, teacher) -> None:
    response = await client.post(
        "/api/v1/schedules",
        json=_payload(school_class, subject, teacher, "10:00", "09:00"),
        headers=auth_headers(admin),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_teacher_must_have_teacher_role(client: AsyncClient, admin, school_class, subject, student) -> None:
    response = await client.post(
        "/api/v1/schedules",
        json=_payload(school_class, subject, student, "08:00", "09:00"),
        headers=auth_headers(admin),
    )
    assert response.status_code == 422
    assert response.json()["detail"]["field"] == "teacher_id"


@pytest.mark.asyncio
async def test_only_admin_manages_schedules(client: AsyncClient, teacher, school_class, subject) -> None:
    response = await client.post(
        "/api/v1/schedules",
        json=_payload(school_class, subject, teacher, "08:00", "09:00"),
        headers=auth_headers(teacher),
    )
    assert response.status_code == 403
