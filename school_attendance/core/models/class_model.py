"""Classes (e.g. 10-A) and their student enrollments. Model named SchoolClass to avoid Python 'class' keyword."""
import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from school_attendance.db.session import Base


class SchoolClass(Base):
    """Class master (10-A, 11-B). Soft disable via is_active."""

    __tablename__ = "classes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, unique=True)
    grade = Column(String(10), nullable=False, index=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    enrollments = relationship(
        "ClassEnrollment",
        back_populates="school_class",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    schedules = relationship("Schedule", back_populates="school_class", passive_deletes=True)


class ClassEnrollment(Base):
    """Class <-> student membership with its own enrolled_at / is_active metadata."""

    __tablename__ = "class_student"
    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="uq_class_student"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    enrolled_at = Column(Date, nullable=False, default=date.today, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    school_class = relationship("SchoolClass", back_populates="enrollments")
    student = relationship("User", back_populates="enrollments")
