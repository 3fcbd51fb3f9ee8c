"""Roster models: tiers, signups as the resolver sees them, and assignments.

A signup is benched when no slot of any role it accepts is left for it.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class Tier(BaseModel):
    """An eligibility level. Higher rank admits to more trainings."""

    id: int | None = None
    name: str
    rank: int = Field(default=0, ge=0)


# Returned by resolve_tier when no mapping matches.
UNRESTRICTED_TIER = Tier(id=None, name="unrestricted", rank=0)


class RoleSlots(BaseModel):
    """Open positions for one role in a training."""

    role_id: int
    priority: int = Field(ge=0, le=4)
    count: int = Field(ge=1)


class SignupEntry(BaseModel):
    """A signup as fed to the resolver: who, when, and what they accept."""

    signup_id: int
    participant_id: int
    registered_at: datetime
    accepted_role_ids: frozenset[int]
    preferred_boss_ids: frozenset[int] = frozenset()


class SignupView(BaseModel):
    """A signup with its participant, for listings and export."""

    signup_id: int
    training_id: int
    participant_id: int
    external_id: int
    account_name: str
    registered_at: datetime
    accepted_role_ids: list[int] = Field(default_factory=list)
    preferred_boss_ids: list[int] = Field(default_factory=list)
    comment: str | None = None


class SlotFill(BaseModel):
    """One required slot and the signup that fills it, if any."""

    role_id: int
    slot_index: int  # 0-based within the role
    signup_id: int | None = None


class BossRoster(BaseModel):
    """Assigned signups that want to attend one boss."""

    boss_id: int
    signup_ids: list[int] = Field(default_factory=list)


class Assignment(BaseModel):
    """Resolver output for one training."""

    training_id: int
    slots: list[SlotFill] = Field(default_factory=list)
    benched: list[int] = Field(default_factory=list)
    boss_rosters: list[BossRoster] = Field(default_factory=list)

    @property
    def assigned(self) -> dict[int, int]:
        """signup_id -> role_id for every filled slot."""
        return {s.signup_id: s.role_id for s in self.slots if s.signup_id is not None}

    @property
    def unfilled(self) -> list[SlotFill]:
        return [s for s in self.slots if s.signup_id is None]

    def role_for(self, signup_id: int) -> int | None:
        return self.assigned.get(signup_id)
