from datetime import date, time

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.api.v1.attendance.schemas import StatusCounts
from school_attendance.api.v1.attendance.service import current_month, upsert_attendance
from school_attendance.core.enums import AttendanceStatus
from school_attendance.core.models import Attendance

from conftest import auth_headers, enroll, make_schedule

LESSON_DAY = "2024-03-04"


def _batch(schedule, *entries, on_date: str = LESSON_DAY) -> dict:
    return {
        "schedule_id": str(schedule.id),
        "date": on_date,
        "attendance": [
            {"student_id": str(student.id), "status": status, **({"notes": notes} if notes else {})}
            for student, status, notes in entries
        ],
    }


@pytest.mark.asyncio
async def test_record_then_correct_keeps_one_row(
    client: AsyncClient, db_session: AsyncSession, teacher, student, school_class, schedule
) -> None:
    await enroll(db_session, school_class, student)
    headers = auth_headers(teacher)

    first = await client.post("/api/v1/attendance", json=_batch(schedule, (student, "present", None)), headers=headers)
    assert first.status_code == 200
    assert first.json()["inserted"] == 1
    assert first.json()["updated"] == 0

    second = await client.post(
        "/api/v1/attendance", json=_batch(schedule, (student, "late", "Bus delay")), headers=headers
    )
    assert second.status_code == 200
    body = second.json()
    assert body["inserted"] == 0
    assert body["updated"] == 1
    assert body["records"][0]["status"] == "late"
    assert body["records"][0]["notes"] == "Bus delay"

    rows = (await db_session.execute(select(Attendance).where(Attendance.student_id == student.id))).scalars().all()
    assert len(rows) == 1
    assert rows[0].status == "late"
    assert rows[0].recorded_by == teacher.id


@pytest.mark.asyncio
async def test_admin_correction_stamps_admin_as_recorder(
    client: AsyncClient, db_session: AsyncSession, admin, teacher, student, school_class, schedule
) -> None:
    await enroll(db_session, school_class, student)
    await client.post("/api/v1/attendance", json=_batch(schedule, (student, "absent", None)), headers=auth_headers(teacher))
    response = await client.post(
        "/api/v1/attendance", json=_batch(schedule, (student, "excused", None)), headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["records"][0]["recorded_by"] == str(admin.id)


@pytest.mark.asyncio
async def test_teacher_cannot_record_for_foreign_schedule(
    client: AsyncClient, db_session: AsyncSession, other_teacher, student, school_class, schedule
) -> None:
    await enroll(db_session, school_class, student)
    response = await client.post(
        "/api/v1/attendance", json=_batch(schedule, (student, "present", None)), headers=auth_headers(other_teacher)
    )
    assert response.status_code == 403
    count = (await db_session.execute(select(func.count(Attendance.id)))).scalar_one()
    assert count == 0


@pytest.mark.asyncio
async def test_student_cannot_record(client: AsyncClient, db_session: AsyncSession, student, school_class, schedule) -> None:
    await enroll(db_session, school_class, student)
    response = await client.post(
        "/api/v1/attendance", json=_batch(schedule, (student, "present", None)), headers=auth_headers(student)
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_failed_entries_do_not_block_others(
    client: AsyncClient, db_session: AsyncSession, teacher, student, other_student, school_class, schedule
) -> None:
    await enroll(db_session, school_class, student)
    # other_student is not enrolled in the class
    response = await client.post(
        "/api/v1/attendance",
        json=_batch(schedule, (student, "present", None), (other_student, "present", None)),
        headers=auth_headers(teacher),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["inserted"] == 1
    assert [f["student_id"] for f in body["failed"]] == [str(other_student.id)]
    assert "enrolled" in body["failed"][0]["error"]


@pytest.mark.asyncio
async def test_unknown_schedule_is_not_found(client: AsyncClient, teacher, student) -> None:
    payload = {
        "schedule_id": "00000000-0000-0000-0000-000000000000",
        "date": LESSON_DAY,
        "attendance": [{"student_id": str(student.id), "status": "present"}],
    }
    response = await client.post("/api/v1/attendance", json=payload, headers=auth_headers(teacher))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_batch_validation(client: AsyncClient, teacher, student, schedule) -> None:
    headers = auth_headers(teacher)
    empty = {"schedule_id": str(schedule.id), "date": LESSON_DAY, "attendance": []}
    assert (await client.post("/api/v1/attendance", json=empty, headers=headers)).status_code == 422

    bad_status = _batch(schedule, (student, "sleeping", None))
    assert (await client.post("/api/v1/attendance", json=bad_status, headers=headers)).status_code == 422

    duplicate = _batch(schedule, (student, "present", None), (student, "late", None))
    assert (await client.post("/api/v1/attendance", json=duplicate, headers=headers)).status_code == 422


@pytest.mark.asyncio
async def test_upsert_reports_insert_then_update(db_session: AsyncSession, teacher, student, schedule) -> None:
    key = dict(student_id=student.id, schedule_id=schedule.id, on_date=date(2024, 3, 4), recorded_by=teacher.id)
    row, inserted = await upsert_attendance(db_session, status=AttendanceStatus.PRESENT, notes=None, **key)
    assert inserted is True
    again, inserted = await upsert_attendance(db_session, status=AttendanceStatus.ABSENT, notes="Sick", **key)
    assert inserted is False
    assert again.id == row.id
    await db_session.commit()
    assert again.status == "absent"


@pytest.mark.asyncio
async def test_sheet_defaults_to_absent(
    client: AsyncClient, db_session: AsyncSession, teacher, student, other_student, school_class, schedule
) -> None:
    await enroll(db_session, school_class, student)
    await enroll(db_session, school_class, other_student)
    await client.post(
        "/api/v1/attendance", json=_batch(schedule, (student, "late", "Bus")), headers=auth_headers(teacher)
    )

    response = await client.get(
        "/api/v1/attendance/sheet",
        params={"schedule_id": str(schedule.id), "date": LESSON_DAY},
        headers=auth_headers(teacher),
    )
    assert response.status_code == 200
    by_name = {s["name"]: s for s in response.json()["students"]}
    assert by_name[student.name]["status"] == "late"
    assert by_name[student.name]["notes"] == "Bus"
    assert by_name[student.name]["recorded"] is True
    assert by_name[other_student.name]["status"] == "absent"
    assert by_name[other_student.name]["notes"] == ""
    assert by_name[other_student.name]["recorded"] is False


@pytest.mark.asyncio
async def test_list_filters(
    client: AsyncClient, db_session: AsyncSession, admin, teacher, student, other_student, school_class, schedule
) -> None:
    await enroll(db_session, school_class, student)
    await enroll(db_session, school_class, other_student)
    headers = auth_headers(teacher)
    await client.post(
        "/api/v1/attendance",
        json=_batch(schedule, (student, "present", None), (other_student, "absent", None)),
        headers=headers,
    )
    await client.post(
        "/api/v1/attendance", json=_batch(schedule, (student, "late", None), on_date="2024-03-11"), headers=headers
    )

    admin_headers = auth_headers(admin)
    by_status = (await client.get("/api/v1/attendance", params={"status": "absent"}, headers=admin_headers)).json()
    assert by_status["total"] == 1

    by_date = (await client.get("/api/v1/attendance", params={"date": "2024-03-11"}, headers=admin_headers)).json()
    assert [r["status"] for r in by_date["items"]] == ["late"]

    by_range = (
        await client.get(
            "/api/v1/attendance", params={"date_from": "2024-03-01", "date_to": "2024-03-05"}, headers=admin_headers
        )
    ).json()
    assert by_range["total"] == 2

    by_search = (await client.get("/api/v1/attendance", params={"search": "STU0002"}, headers=admin_headers)).json()
    assert [r["student_name"] for r in by_search["items"]] == [other_student.name]


@pytest.mark.asyncio
async def test_class_report_counts_per_student_and_subject(
    client: AsyncClient, db_session: AsyncSession, teacher, student, school_class, subject, schedule
) -> None:
    await enroll(db_session, school_class, student)
    tuesday = await make_schedule(db_session, school_class, subject, teacher, day="tuesday", start=time(9, 0), end=time(10, 0))
    headers = auth_headers(teacher)
    await client.post("/api/v1/attendance", json=_batch(schedule, (student, "present", None)), headers=headers)
    await client.post(
        "/api/v1/attendance", json=_batch(tuesday, (student, "absent", None), on_date="2024-03-05"), headers=headers
    )

    response = await client.get(
        "/api/v1/attendance/report",
        params={"type": "class", "id": str(school_class.id), "date_from": "2024-03-01", "date_to": "2024-03-31"},
        headers=headers,
    )
    assert response.status_code == 200
    report = response.json()
    assert report["name"] == school_class.name
    [row] = report["students"]
    assert row["student_id"] == str(student.id)
    assert row["subjects"][0]["subject_name"] == subject.name
    assert row["totals"]["present"] == 1
    assert row["totals"]["absent"] == 1
    assert row["totals"]["total"] == 2


@pytest.mark.asyncio
async def test_class_report_limited_to_classes_the_teacher_teaches(
    client: AsyncClient, db_session: AsyncSession, admin, other_teacher, student, school_class, schedule
) -> None:
    await enroll(db_session, school_class, student)
    params = {"type": "class", "id": str(school_class.id)}

    response = await client.get("/api/v1/attendance/report", params=params, headers=auth_headers(other_teacher))
    assert response.status_code == 403

    response = await client.get("/api/v1/attendance/report", params=params, headers=auth_headers(admin))
    assert response.status_code == 200
    assert [row["student_id"] for row in response.json()["students"]] == [str(student.id)]


@pytest.mark.asyncio
async def test_report_is_staff_only(client: AsyncClient, student, school_class) -> None:
    response = await client.get(
        "/api/v1/attendance/report",
        params={"type": "class", "id": str(school_class.id)},
        headers=auth_headers(student),
    )
    assert response.status_code == 403


def test_current_month_bounds() -> None:
    assert current_month(date(2024, 2, 14)) == (date(2024, 2, 1), date(2024, 2, 29))


def test_status_counts_add() -> None:
    counts = StatusCounts()
    counts.add("present", 3)
    counts.add("late")
    assert counts.present == 3
    assert counts.late == 1
    assert counts.total == 4
