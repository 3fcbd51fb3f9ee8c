"""SQLAlchemy ORM models for the Crossroads database.

Every entity is addressed by a stable integer id. Many-to-many relations
(training slots, boss mappings, signup roles and preferences) are explicit
rows rather than ORM collections, so cascades stay in the core's hands.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class TierRow(Base):
    __tablename__ = "tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    rank: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class TierMappingRow(Base):
    """Links an external group id (a Discord role) to a tier."""

    __tablename__ = "tier_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tier_id: Mapped[int] = mapped_column(ForeignKey("tiers.id"), nullable=False)
    external_group_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("tier_id", "external_group_id", name="uq_tier_mapping"),
        Index("ix_tier_mappings_group", "external_group_id"),
    )


class RoleRow(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    repr: Mapped[str] = mapped_column(String(20), nullable=False)
    emoji: Mapped[int] = mapped_column(BigInteger, nullable=False)
    priority: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=2)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (Index("ix_roles_repr_emoji", "repr", "emoji"),)


class TrainingRow(Base):
    __tablename__ = "trainings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    state: Mapped[str] = mapped_column(String(20), default="created")
    tier_id: Mapped[int | None] = mapped_column(ForeignKey("tiers.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    state_changed_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    __table_args__ = (Index("ix_trainings_state_date", "state", "date"),)


class TrainingStateChangeRow(Base):
    """Append-only audit trail of lifecycle transitions."""

    __tablename__ = "training_state_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    training_id: Mapped[int] = mapped_column(ForeignKey("trainings.id"), nullable=False)
    from_state: Mapped[str] = mapped_column(String(20), nullable=False)
    to_state: Mapped[str] = mapped_column(String(20), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    __table_args__ = (Index("ix_state_changes_training", "training_id"),)


class TrainingSlotRow(Base):
    """One open position for a role in a training. Repeated pairs add openings."""

    __tablename__ = "training_slots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    training_id: Mapped[int] = mapped_column(ForeignKey("trainings.id"), nullable=False)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id"), nullable=False)

    __table_args__ = (Index("ix_training_slots_training_role", "training_id", "role_id"),)


class BossRow(Base):
    __tablename__ = "bosses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repr: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    wing: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    emoji: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)


class TrainingBossRow(Base):
    __tablename__ = "training_bosses"

    training_id: Mapped[int] = mapped_column(ForeignKey("trainings.id"), primary_key=True)
    boss_id: Mapped[int] = mapped_column(ForeignKey("bosses.id"), primary_key=True)


class ParticipantRow(Base):
    __tablename__ = "participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    external_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    account_name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)


class SignupRow(Base):
    __tablename__ = "signups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    participant_id: Mapped[int] = mapped_column(ForeignKey("participants.id"), nullable=False)
    training_id: Mapped[int] = mapped_column(ForeignKey("trainings.id"), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    __table_args__ = (
        UniqueConstraint("participant_id", "training_id", name="uq_signup_participant"),
        Index("ix_signups_training", "training_id"),
    )


class SignupRoleRow(Base):
    __tablename__ = "signup_roles"

    signup_id: Mapped[int] = mapped_column(ForeignKey("signups.id"), primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id"), primary_key=True)


class SignupBossPreferenceRow(Base):
    __tablename__ = "signup_boss_preferences"

    signup_id: Mapped[int] = mapped_column(ForeignKey("signups.id"), primary_key=True)
    boss_id: Mapped[int] = mapped_column(ForeignKey("bosses.id"), primary_key=True)


class AssignmentRow(Base):
    """The committed resolver output for a training. Replaced per run until frozen."""

    __tablename__ = "assignments"

    training_id: Mapped[int] = mapped_column(ForeignKey("trainings.id"), primary_key=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    frozen: Mapped[bool] = mapped_column(Boolean, default=False)
    resolved_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
