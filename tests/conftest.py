import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import time
from typing import AsyncGenerator, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from school_attendance.auth.models import User
from school_attendance.auth.security import access_token_for, hash_password
from school_attendance.core.models import ClassEnrollment, Schedule, SchoolClass, Subject
from school_attendance.core.storage import EvidenceStorage, get_evidence_storage
from school_attendance.db.session import Base, get_db
from school_attendance.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
PASSWORD = "StrongPass123"


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test, shared with the app through get_db."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
        # ON DELETE CASCADE only fires with foreign keys on
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


@pytest.fixture()
def evidence_storage(tmp_path) -> EvidenceStorage:
    storage = EvidenceStorage(tmp_path)
    app.dependency_overrides[get_evidence_storage] = lambda: storage
    yield storage
    app.dependency_overrides.pop(get_evidence_storage, None)


@pytest.fixture()
async def client(db_session: AsyncSession, evidence_storage: EvidenceStorage) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def make_user(db: AsyncSession, role: str, name: str, email: str, **extra) -> User:
    user = User(name=name, email=email, password_hash=hash_password(PASSWORD), role=role, **extra)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {access_token_for(user.id, user.role)}"}


@pytest.fixture()
async def admin(db_session: AsyncSession) -> User:
    return await make_user(db_session, "admin", "Ada Admin", "admin@example.com")


@pytest.fixture()
async def teacher(db_session: AsyncSession) -> User:
    return await make_user(db_session, "teacher", "Tom Teacher", "teacher@example.com")


@pytest.fixture()
async def other_teacher(db_session: AsyncSession) -> User:
    return await make_user(db_session, "teacher", "Olga Teacher", "olga@example.com")


@pytest.fixture()
async def student(db_session: AsyncSession) -> User:
    return await make_user(db_session, "student", "Sam Student", "sam@example.com", student_number="STU0001")


@pytest.fixture()
async def other_student(db_session: AsyncSession) -> User:
    return await make_user(db_session, "student", "Sue Student", "sue@example.com", student_number="STU0002")


@pytest.fixture()
async def school_class(db_session: AsyncSession) -> SchoolClass:
    obj = SchoolClass(name="9-A", grade="9", is_active=True)
    db_session.add(obj)
    await db_session.commit()
    await db_session.refresh(obj)
    return obj


@pytest.fixture()
async def subject(db_session: AsyncSession) -> Subject:
    obj = Subject(name="Mathematics", code="MATH9", is_active=True)
    db_session.add(obj)
    await db_session.commit()
    await db_session.refresh(obj)
    return obj


async def enroll(db: AsyncSession, school_class: SchoolClass, student: User, is_active: bool = True) -> ClassEnrollment:
    enrollment = ClassEnrollment(class_id=school_class.id, student_id=student.id, is_active=is_active)
    db.add(enrollment)
    await db.commit()
    return enrollment


async def make_schedule(
    db: AsyncSession,
    school_class: SchoolClass,
    subject: Subject,
    teacher: User,
    day: str = "monday",
    start: time = time(8, 0),
    end: time = time(9, 0),
    is_active: bool = True,
) -> Schedule:
    schedule = Schedule(
        class_id=school_class.id,
        subject_id=subject.id,
        teacher_id=teacher.id,
        day_of_week=day,
        start_time=start,
        end_time=end,
        room="Room 101",
        is_active=is_active,
    )
    db.add(schedule)
    await db.commit()
    await db.refresh(schedule)
    return schedule


@pytest.fixture()
async def schedule(db_session: AsyncSession, school_class, subject, teacher) -> Schedule:
    return await make_schedule(db_session, school_class, subject, teacher)
