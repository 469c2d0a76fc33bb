from datetime import datetime, time, date
from enum import Enum as PyEnum

from flask_login import UserMixin
from sqlalchemy import (
    Enum, ForeignKey, UniqueConstraint, Index, Boolean, Date, DateTime, Time,
    Integer, String, Text, JSON
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from extensions import db


# ---------- Enums ----------
class ScheduleStatus(PyEnum):
    PENDING = "pending"
    APPROVAL_REQUESTED = "approval_requested"
    APPROVED = "approved"
    CONFIRMED = "confirmed"
    MODIFICATION_REQUESTED = "modification_requested"
    MODIFICATION_APPROVED = "modification_approved"
    CANCELLATION_REQUESTED = "cancellation_requested"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    DELETED = "deleted"


class UserRole(PyEnum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    PROFESSOR = "PROFESSOR"


# ---------- Users ----------
class User(UserMixin, db.Model):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(120))
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.PROFESSOR.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role in (UserRole.ADMIN.value, UserRole.MANAGER.value)

    def __repr__(self):
        return f"<User {self.email}>"


# ---------- Directory ----------
class Studio(db.Model):
    __tablename__ = "studios"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    shooting_types = relationship("StudioShootingType", back_populates="studio", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Studio {self.name}>"


class ShootingType(db.Model):
    __tablename__ = "shooting_types"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    studios = relationship("StudioShootingType", back_populates="shooting_type", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<ShootingType {self.name}>"


class StudioShootingType(db.Model):
    """Какие типы съёмки поддерживает студия; is_primary: основная студия для типа."""
    __tablename__ = "studio_shooting_types"

    id: Mapped[int] = mapped_column(primary_key=True)
    studio_id: Mapped[int] = mapped_column(ForeignKey("studios.id", ondelete="CASCADE"), nullable=False)
    shooting_type_id: Mapped[int] = mapped_column(ForeignKey("shooting_types.id", ondelete="CASCADE"), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    studio = relationship("Studio", back_populates="shooting_types")
    shooting_type = relationship("ShootingType", back_populates="studios")

    __table_args__ = (
        UniqueConstraint("studio_id", "shooting_type_id", name="uq_studio_shooting_type"),
        Index("ix_sst_shooting_type", "shooting_type_id"),
    )


# ---------- Schedules ----------
class Schedule(db.Model):
    __tablename__ = "schedules"

    id: Mapped[int] = mapped_column(primary_key=True)
    shoot_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    professor_name: Mapped[str] = mapped_column(String(120), nullable=False)
    course_name: Mapped[str | None] = mapped_column(String(255))
    course_code: Mapped[str | None] = mapped_column(String(50))
    shooting_type: Mapped[str] = mapped_column(String(100), nullable=False)
    studio_id: Mapped[int | None] = mapped_column(ForeignKey("studios.id", ondelete="SET NULL"), index=True)
    notes: Mapped[str | None] = mapped_column(Text)

    approval_status: Mapped[ScheduleStatus] = mapped_column(
        Enum(ScheduleStatus), default=ScheduleStatus.PENDING, nullable=False
    )
    previous_status: Mapped[ScheduleStatus | None] = mapped_column(Enum(ScheduleStatus))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # перерыв внутри съёмки
    break_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    break_start: Mapped[time | None] = mapped_column(Time)
    break_end: Mapped[time | None] = mapped_column(Time)
    break_duration_minutes: Mapped[int | None] = mapped_column(Integer)

    # разделение
    schedule_group_id: Mapped[str | None] = mapped_column(String(32), index=True)
    is_split: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_split_schedule: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    parent_schedule_id: Mapped[int | None] = mapped_column(ForeignKey("schedules.id", ondelete="RESTRICT"), index=True)
    segment_order: Mapped[int | None] = mapped_column(Integer)
    split_reason: Mapped[str | None] = mapped_column(Text)
    split_at: Mapped[datetime | None] = mapped_column(DateTime)
    deletion_reason: Mapped[str | None] = mapped_column(String(30))

    modification_reason: Mapped[str | None] = mapped_column(Text)
    cancellation_reason: Mapped[str | None] = mapped_column(Text)

    requested_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    approved_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    studio = relationship("Studio")
    parent = relationship("Schedule", remote_side="Schedule.id", foreign_keys=[parent_schedule_id])
    requested_by = relationship("User", foreign_keys=[requested_by_id])
    approved_by = relationship("User", foreign_keys=[approved_by_id])

    __table_args__ = (
        Index("ix_schedules_date_studio", "shoot_date", "studio_id"),
    )

    def __repr__(self):
        return f"<Schedule {self.id} {self.shoot_date} {self.start_time}-{self.end_time}>"


class ScheduleHistory(db.Model):
    """Журнал изменений расписания. Только добавление."""
    __tablename__ = "schedule_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    schedule_id: Mapped[int] = mapped_column(ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False, index=True)
    change_type: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[int | None] = mapped_column(Integer)
    actor_name: Mapped[str | None] = mapped_column(String(120))
    actor_role: Mapped[str | None] = mapped_column(String(20))
    source: Mapped[str | None] = mapped_column(String(30))
    reason: Mapped[str | None] = mapped_column(Text)
    old_values: Mapped[dict | None] = mapped_column(JSON)
    new_values: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
