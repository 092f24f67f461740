from datetime import date, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.auth.models import User
from school_attendance.core.models import ClassEnrollment, LeaveRequest, SchoolClass

from conftest import auth_headers, enroll


def _new_user(**overrides) -> dict:
    data = {
        "name": "Tina Teacher",
        "email": "tina@example.com",
        "password": "StrongPass123",
        "password_confirmation": "StrongPass123",
        "role": "teacher",
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_admin_creates_student_with_classes(
    client: AsyncClient, db_session: AsyncSession, admin, school_class
) -> None:
    payload = _new_user(
        name="Stan Student",
        email="stan@example.com",
        role="student",
        student_number="STU0100",
        class_ids=[str(school_class.id)],
    )
    response = await client.post("/api/v1/admin/users", json=payload, headers=auth_headers(admin))
    assert response.status_code == 201
    body = response.json()
    assert body["role"] == "student"
    assert [c["name"] for c in body["classes"]] == [school_class.name]
    assert body["classes"][0]["is_active"] is True


@pytest.mark.asyncio
async def test_create_user_uniqueness(client: AsyncClient, admin, student) -> None:
    headers = auth_headers(admin)
    dup_email = await client.post("/api/v1/admin/users", json=_new_user(email=student.email), headers=headers)
    assert dup_email.status_code == 409
    assert dup_email.json()["detail"]["field"] == "email"

    dup_number = await client.post(
        "/api/v1/admin/users",
        json=_new_user(role="student", student_number=student.student_number),
        headers=headers,
    )
    assert dup_number.status_code == 409
    assert dup_number.json()["detail"]["field"] == "student_number"


@pytest.mark.asyncio
async def test_create_user_password_rules(client: AsyncClient, admin) -> None:
    headers = auth_headers(admin)
    short = await client.post(
        "/api/v1/admin/users", json=_new_user(password="short", password_confirmation="short"), headers=headers
    )
    assert short.status_code == 422
    mismatch = await client.post("/api/v1/admin/users", json=_new_user(password_confirmation="Different123"), headers=headers)
    assert mismatch.status_code == 422


@pytest.mark.asyncio
async def test_list_users_filters(client: AsyncClient, admin, teacher, student, other_student) -> None:
    headers = auth_headers(admin)
    students = (await client.get("/api/v1/admin/users", params={"role": "student"}, headers=headers)).json()
    assert students["total"] == 2
    assert students["per_page"] == 15

    found = (await client.get("/api/v1/admin/users", params={"search": "STU0002"}, headers=headers)).json()
    assert [u["email"] for u in found["items"]] == [other_student.email]


@pytest.mark.asyncio
async def test_update_student_replaces_enrollments(
    client: AsyncClient, db_session: AsyncSession, admin, student, school_class
) -> None:
    other_class = SchoolClass(name="10-A", grade="10", is_active=True)
    db_session.add(other_class)
    await db_session.commit()
    await enroll(db_session, school_class, student)

    payload = {
        "name": student.name,
        "email": student.email,
        "role": "student",
        "student_number": student.student_number,
        "class_ids": [str(other_class.id)],
    }
    response = await client.put(f"/api/v1/admin/users/{student.id}", json=payload, headers=auth_headers(admin))
    assert response.status_code == 200
    assert [c["name"] for c in response.json()["classes"]] == ["10-A"]

    payload.pop("class_ids")
    response = await client.put(f"/api/v1/admin/users/{student.id}", json=payload, headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["classes"] == []
    rows = (await db_session.execute(select(ClassEnrollment))).scalars().all()
    assert rows == []


@pytest.mark.asyncio
async def test_update_password(client: AsyncClient, admin, teacher) -> None:
    payload = {
        "name": teacher.name,
        "email": teacher.email,
        "role": "teacher",
        "password": "BrandNew123",
        "password_confirmation": "BrandNew123",
    }
    response = await client.put(f"/api/v1/admin/users/{teacher.id}", json=payload, headers=auth_headers(admin))
    assert response.status_code == 200

    login = await client.post("/api/v1/auth/login", json={"email": teacher.email, "password": "BrandNew123"})
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_cannot_delete_last_admin(client: AsyncClient, db_session: AsyncSession, admin) -> None:
    response = await client.delete(f"/api/v1/admin/users/{admin.id}", headers=auth_headers(admin))
    assert response.status_code == 409
    assert await db_session.get(User, admin.id) is not None


@pytest.mark.asyncio
async def test_can_delete_admin_when_another_exists(client: AsyncClient, db_session: AsyncSession, admin) -> None:
    second = User(name="Second Admin", email="second@example.com", password_hash="x", role="admin")
    db_session.add(second)
    await db_session.commit()

    response = await client.delete(f"/api/v1/admin/users/{second.id}", headers=auth_headers(admin))
    assert response.status_code == 204


@pytest.mark.asyncio
async def test_cannot_demote_last_admin(client: AsyncClient, admin) -> None:
    payload = {"name": admin.name, "email": admin.email, "role": "teacher"}
    response = await client.put(f"/api/v1/admin/users/{admin.id}", json=payload, headers=auth_headers(admin))
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_user_admin_is_admin_only(client: AsyncClient, teacher) -> None:
    response = await client.get("/api/v1/admin/users", headers=auth_headers(teacher))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_get_unknown_user(client: AsyncClient, admin) -> None:
    response = await client.get("/api/v1/admin/users/00000000-0000-0000-0000-000000000000", headers=auth_headers(admin))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cannot_change_role_of_teacher_with_active_schedules(
    client: AsyncClient, db_session: AsyncSession, admin, teacher, schedule
) -> None:
    payload = {"name": teacher.name, "email": teacher.email, "role": "student", "student_number": "STU0900"}
    response = await client.put(f"/api/v1/admin/users/{teacher.id}", json=payload, headers=auth_headers(admin))
    assert response.status_code == 409
    assert response.json()["detail"]["field"] == "role"
    role = (await db_session.execute(select(User.role).where(User.id == teacher.id))).scalar_one()
    assert role == "teacher"

    schedule.is_active = False
    await db_session.commit()
    response = await client.put(f"/api/v1/admin/users/{teacher.id}", json=payload, headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["role"] == "student"


@pytest.mark.asyncio
async def test_delete_student_removes_leave_rows_and_evidence(
    client: AsyncClient, db_session: AsyncSession, admin, student, evidence_storage
) -> None:
    start = date.today() + timedelta(days=1)
    submitted = await client.post(
        "/api/v1/leave-requests",
        data={
            "from_date": start.isoformat(),
            "to_date": start.isoformat(),
            "type": "sick",
            "reason": "Fever and doctor's orders to rest",
        },
        files={"evidence_file": ("note.pdf", b"%PDF-1.4 note", "application/pdf")},
        headers=auth_headers(student),
    )
    assert submitted.status_code == 201
    path = submitted.json()["evidence_file"]
    assert evidence_storage.exists(path)

    response = await client.delete(f"/api/v1/admin/users/{student.id}", headers=auth_headers(admin))
    assert response.status_code == 204
    remaining = (
        await db_session.execute(select(func.count(LeaveRequest.id)).where(LeaveRequest.student_id == student.id))
    ).scalar_one()
    assert remaining == 0
    assert not evidence_storage.exists(path)


@pytest.mark.asyncio
async def test_delete_student_kept_when_evidence_cannot_be_removed(
    client: AsyncClient, db_session: AsyncSession, admin, student, evidence_storage, monkeypatch
) -> None:
    db_session.add(
        LeaveRequest(
            student_id=student.id,
            from_date=date(2024, 3, 4),
            to_date=date(2024, 3, 4),
            type="sick",
            reason="Fever and doctor's orders to rest",
            status="pending",
            evidence_file="leave-requests/note.pdf",
        )
    )
    await db_session.commit()

    def broken_delete(path: str) -> bool:
        raise PermissionError(path)

    monkeypatch.setattr(evidence_storage, "delete", broken_delete)
    response = await client.delete(f"/api/v1/admin/users/{student.id}", headers=auth_headers(admin))
    assert response.status_code == 500
    assert (await db_session.execute(select(User.id).where(User.id == student.id))).scalar_one_or_none() == student.id
