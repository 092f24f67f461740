"""
Create the tables and the bootstrap admin, optionally with demo data.

Run with env set:
  DATABASE_URL=postgresql+asyncpg://...
  ADMIN_EMAIL=admin@school.com
  ADMIN_PASSWORD=ChangeMe123

  python -m school_attendance.db.seed          # tables + admin
  python -m school_attendance.db.seed --demo   # plus classes, subjects, people and a timetable
"""
import argparse
import asyncio
import random
from datetime import date, time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from school_attendance.auth.models import User
from school_attendance.auth.security import hash_password
from school_attendance.core.config import settings
from school_attendance.core.enums import DayOfWeek, UserRole
from school_attendance.core.models import ClassEnrollment, Schedule, SchoolClass, Subject
from school_attendance.db.session import AsyncSessionLocal, Base, engine

from school_attendance.api.v1.schedules.conflicts import first_overlapping

DEMO_PASSWORD = "password"

DEMO_SUBJECTS = [
    ("Mathematics", "MATH9"),
    ("Physics", "PHYS10"),
    ("Chemistry", "CHEM10"),
    ("Biology", "BIOL11"),
    ("English", "ENG9"),
    ("History", "HIST10"),
    ("Geography", "GEO11"),
    ("Computer Science", "CS12"),
]
DEMO_CLASSES = [("9-A", "9"), ("9-B", "9"), ("10-A", "10"), ("10-B", "10"), ("11-A", "11"), ("12-A", "12")]
TIME_SLOTS = [
    (time(8, 0), time(9, 0)),
    (time(9, 0), time(10, 0)),
    (time(10, 30), time(11, 30)),
    (time(11, 30), time(12, 30)),
    (time(13, 30), time(14, 30)),
    (time(14, 30), time(15, 30)),
]
SCHOOL_DAYS = [DayOfWeek.MONDAY, DayOfWeek.TUESDAY, DayOfWeek.WEDNESDAY, DayOfWeek.THURSDAY, DayOfWeek.FRIDAY]


async def create_tables() -> None:
    # Importing the model modules registers every table on Base.metadata
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Tables ensured.")


async def seed_admin(db: AsyncSession) -> None:
    email = settings.admin_email
    password = settings.admin_password
    if not email or not password:
        print("No ADMIN_EMAIL/ADMIN_PASSWORD; skipping admin user.")
        return

    result = await db.execute(select(User).where(User.email == email))
    admin = result.scalar_one_or_none()
    if not admin:
        db.add(
            User(
                name=settings.admin_name,
                email=email,
                password_hash=hash_password(password),
                role=UserRole.ADMIN.value,
            )
        )
        print("Created admin user:", email)
    else:
        admin.role = UserRole.ADMIN.value
        admin.password_hash = hash_password(password)
        print("Updated existing user to admin:", email)
    await db.commit()


async def seed_demo(db: AsyncSession, rng: random.Random) -> None:
    """Demo school: 5 teachers, 8 subjects, 6 classes, 50 students, a weekly timetable."""
    existing = await db.execute(select(Subject.id).limit(1))
    if existing.scalar_one_or_none() is not None:
        print("Demo data already present; skipping.")
        return

    password_hash = hash_password(DEMO_PASSWORD)
    teachers = [
        User(name=f"Teacher {i}", email=f"teacher{i}@school.com", password_hash=password_hash, role=UserRole.TEACHER.value)
        for i in range(1, 6)
    ]
    students = [
        User(
            name=f"Student {i:02d}",
            email=f"student{i:02d}@school.com",
            password_hash=password_hash,
            role=UserRole.STUDENT.value,
            student_number=f"STU{i:04d}",
        )
        for i in range(1, 51)
    ]
    subjects = [
        Subject(name=name, code=code, description=f"A comprehensive course in {name}", is_active=True)
        for name, code in DEMO_SUBJECTS
    ]
    classes = [
        SchoolClass(name=name, grade=grade, description=f"Grade {grade} class", is_active=True)
        for name, grade in DEMO_CLASSES
    ]
    db.add_all(teachers + students + subjects + classes)
    await db.flush()

    for school_class in classes:
        for student in rng.sample(students, rng.randint(8, 12)):
            db.add(
                ClassEnrollment(
                    class_id=school_class.id,
                    student_id=student.id,
                    enrolled_at=date.today(),
                    is_active=True,
                )
            )

    created = 0
    placed = []
    for school_class in classes:
        for day in SCHOOL_DAYS:
            for start, end in rng.sample(TIME_SLOTS, rng.randint(3, 5)):
                # Pick a teacher who is free in this slot
                free = [
                    t
                    for t in rng.sample(teachers, len(teachers))
                    if first_overlapping(start, end, [s for s in placed if s.teacher_id == t.id and s.day_of_week == day.value]) is None
                ]
                if not free:
                    continue
                schedule = Schedule(
                    class_id=school_class.id,
                    subject_id=rng.choice(subjects).id,
                    teacher_id=free[0].id,
                    day_of_week=day.value,
                    start_time=start,
                    end_time=end,
                    room=f"Room {rng.randint(101, 305)}",
                    is_active=True,
                )
                db.add(schedule)
                placed.append(schedule)
                created += 1

    await db.commit()
    print(
        f"Demo data: {len(teachers)} teachers, {len(students)} students, {len(subjects)} subjects, "
        f"{len(classes)} classes, {created} schedules. Password for all demo users: {DEMO_PASSWORD}"
    )


async def main(demo: bool = False, seed: int = 42) -> None:
    await create_tables()
    async with AsyncSessionLocal() as db:
        try:
            await seed_admin(db)
            if demo:
                await seed_demo(db, random.Random(seed))
        except Exception as e:
            await db.rollback()
            print("Error:", e)
            raise
    await engine.dispose()
    print("Seed done.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create tables and seed the attendance database")
    parser.add_argument("--demo", action="store_true", help="Also create demo classes, subjects, people and schedules")
    parser.add_argument("--seed", type=int, default=42, help="Random seed for demo data")
    args = parser.parse_args()
    asyncio.run(main(demo=args.demo, seed=args.seed))
