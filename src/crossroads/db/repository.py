"""Repository pattern for database access.

Wraps one SQLAlchemy async session. Relation rows (slots, boss mappings,
signup roles and preferences) are written and deleted explicitly here; the
core decides when cascades happen.
"""

from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crossroads.db.models import (
    AssignmentRow,
    BossRow,
    ParticipantRow,
    RoleRow,
    SignupBossPreferenceRow,
    SignupRoleRow,
    SignupRow,
    TierMappingRow,
    TierRow,
    TrainingBossRow,
    TrainingRow,
    TrainingSlotRow,
    TrainingStateChangeRow,
)


class Repository:
    """Async repository for all database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- Trainings ---

    async def create_training(
        self,
        title: str,
        date: datetime,
        tier_id: int | None = None,
    ) -> TrainingRow:
        row = TrainingRow(title=title, date=date, tier_id=tier_id)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_training(self, training_id: int) -> TrainingRow | None:
        return await self.session.get(TrainingRow, training_id)

    async def list_trainings(self, state: str | None = None) -> list[TrainingRow]:
        """Trainings ordered by scheduled date, optionally filtered by state."""
        stmt = select(TrainingRow).order_by(TrainingRow.date, TrainingRow.id)
        if state is not None:
            stmt = stmt.where(TrainingRow.state == state)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_trainings_by_state(self) -> dict[str, int]:
        stmt = select(TrainingRow.state, func.count()).group_by(TrainingRow.state)
        result = await self.session.execute(stmt)
        return {state: count for state, count in result.all()}

    async def update_training_state(
        self,
        training: TrainingRow,
        to_state: str,
    ) -> TrainingStateChangeRow:
        """Set the new state and append the audit row in the same flush."""
        changed_at = datetime.now(UTC)
        change = TrainingStateChangeRow(
            training_id=training.id,
            from_state=training.state,
            to_state=to_state,
            changed_at=changed_at,
        )
        training.state = to_state
        training.state_changed_at = changed_at
        self.session.add(change)
        await self.session.flush()
        return change

    async def get_state_history(self, training_id: int) -> list[TrainingStateChangeRow]:
        stmt = (
            select(TrainingStateChangeRow)
            .where(TrainingStateChangeRow.training_id == training_id)
            .order_by(TrainingStateChangeRow.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def set_training_tier(self, training: TrainingRow, tier_id: int | None) -> None:
        training.tier_id = tier_id
        await self.session.flush()

    async def delete_training(self, training_id: int) -> None:
        """Delete a training and everything that hangs off it.

        Order matters with foreign keys on: leaves first.
        """
        signup_ids = select(SignupRow.id).where(SignupRow.training_id == training_id)
        await self.session.execute(
            delete(SignupBossPreferenceRow).where(SignupBossPreferenceRow.signup_id.in_(signup_ids))
        )
        await self.session.execute(
            delete(SignupRoleRow).where(SignupRoleRow.signup_id.in_(signup_ids))
        )
        await self.session.execute(delete(SignupRow).where(SignupRow.training_id == training_id))
        await self.session.execute(
            delete(TrainingBossRow).where(TrainingBossRow.training_id == training_id)
        )
        await self.session.execute(
            delete(TrainingSlotRow).where(TrainingSlotRow.training_id == training_id)
        )
        await self.session.execute(
            delete(AssignmentRow).where(AssignmentRow.training_id == training_id)
        )
        await self.session.execute(
            delete(TrainingStateChangeRow).where(TrainingStateChangeRow.training_id == training_id)
        )
        await self.session.execute(delete(TrainingRow).where(TrainingRow.id == training_id))

    # --- Required slots ---

    async def add_slots(self, training_id: int, role_id: int, count: int = 1) -> None:
        for _ in range(count):
            self.session.add(TrainingSlotRow(training_id=training_id, role_id=role_id))
        await self.session.flush()

    async def remove_slots(self, training_id: int, role_id: int, count: int = 1) -> int:
        """Remove up to ``count`` openings of a role. Returns how many were removed."""
        stmt = (
            select(TrainingSlotRow)
            .where(
                TrainingSlotRow.training_id == training_id,
                TrainingSlotRow.role_id == role_id,
            )
            .order_by(TrainingSlotRow.id.desc())
            .limit(count)
        )
        result = await self.session.execute(stmt)
        rows = list(result.scalars().all())
        for row in rows:
            await self.session.delete(row)
        await self.session.flush()
        return len(rows)

    async def get_slot_counts(self, training_id: int) -> dict[int, int]:
        """role_id -> number of openings."""
        stmt = select(TrainingSlotRow.role_id).where(TrainingSlotRow.training_id == training_id)
        result = await self.session.execute(stmt)
        return dict(Counter(result.scalars().all()))

    # --- Roles ---

    async def create_role(
        self,
        title: str,
        repr: str,
        emoji: int,
        priority: int,
    ) -> RoleRow:
        row = RoleRow(title=title, repr=repr, emoji=emoji, priority=priority, active=True)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_role(self, role_id: int) -> RoleRow | None:
        return await self.session.get(RoleRow, role_id)

    async def get_roles(self, role_ids: list[int]) -> list[RoleRow]:
        if not role_ids:
            return []
        stmt = select(RoleRow).where(RoleRow.id.in_(role_ids))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_active_role_by_key(self, repr: str, emoji: int) -> RoleRow | None:
        stmt = select(RoleRow).where(
            RoleRow.repr == repr,
            RoleRow.emoji == emoji,
            RoleRow.active.is_(True),
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_active_role_by_repr(self, repr: str) -> RoleRow | None:
        stmt = (
            select(RoleRow)
            .where(RoleRow.repr == repr, RoleRow.active.is_(True))
            .order_by(RoleRow.id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_all_roles(self) -> list[RoleRow]:
        """Every role, active or not. Historical signups may reference inactive ones."""
        result = await self.session.execute(select(RoleRow).order_by(RoleRow.id))
        return list(result.scalars().all())

    async def list_active_roles(self) -> list[RoleRow]:
        stmt = (
            select(RoleRow)
            .where(RoleRow.active.is_(True))
            .order_by(RoleRow.priority, RoleRow.repr, RoleRow.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def deactivate_role(self, role: RoleRow) -> None:
        role.active = False
        await self.session.flush()

    # --- Tiers ---

    async def create_tier(self, name: str, rank: int) -> TierRow:
        row = TierRow(name=name, rank=rank)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_tier(self, tier_id: int) -> TierRow | None:
        return await self.session.get(TierRow, tier_id)

    async def get_tier_by_name(self, name: str) -> TierRow | None:
        result = await self.session.execute(select(TierRow).where(TierRow.name == name))
        return result.scalar_one_or_none()

    async def list_tiers(self) -> list[TierRow]:
        result = await self.session.execute(select(TierRow).order_by(TierRow.rank, TierRow.name))
        return list(result.scalars().all())

    async def delete_tier(self, tier: TierRow) -> None:
        await self.session.execute(delete(TierMappingRow).where(TierMappingRow.tier_id == tier.id))
        await self.session.delete(tier)
        await self.session.flush()

    async def count_trainings_for_tier(self, tier_id: int) -> int:
        stmt = select(func.count()).select_from(TrainingRow).where(TrainingRow.tier_id == tier_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def add_tier_mapping(self, tier_id: int, external_group_id: int) -> TierMappingRow:
        row = TierMappingRow(tier_id=tier_id, external_group_id=external_group_id)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_tier_mapping(self, tier_id: int, external_group_id: int) -> TierMappingRow | None:
        stmt = select(TierMappingRow).where(
            TierMappingRow.tier_id == tier_id,
            TierMappingRow.external_group_id == external_group_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete_tier_mapping(self, mapping: TierMappingRow) -> None:
        await self.session.delete(mapping)
        await self.session.flush()

    async def get_tier_group_ids(self, tier_id: int) -> list[int]:
        stmt = (
            select(TierMappingRow.external_group_id)
            .where(TierMappingRow.tier_id == tier_id)
            .order_by(TierMappingRow.external_group_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_tiers_for_groups(self, external_group_ids: set[int]) -> list[TierRow]:
        """Every tier linked to at least one of the given external groups."""
        if not external_group_ids:
            return []
        stmt = (
            select(TierRow)
            .join(TierMappingRow, TierMappingRow.tier_id == TierRow.id)
            .where(TierMappingRow.external_group_id.in_(external_group_ids))
            .distinct()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # --- Bosses ---

    async def create_boss(
        self,
        repr: str,
        name: str,
        wing: int,
        position: int,
        emoji: int | None = None,
        url: str | None = None,
    ) -> BossRow:
        row = BossRow(repr=repr, name=name, wing=wing, position=position, emoji=emoji, url=url)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_boss(self, boss_id: int) -> BossRow | None:
        return await self.session.get(BossRow, boss_id)

    async def get_boss_by_repr(self, repr: str) -> BossRow | None:
        result = await self.session.execute(select(BossRow).where(BossRow.repr == repr))
        return result.scalar_one_or_none()

    async def list_bosses(self) -> list[BossRow]:
        stmt = select(BossRow).order_by(BossRow.wing, BossRow.position, BossRow.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def attach_boss(self, training_id: int, boss_id: int) -> None:
        self.session.add(TrainingBossRow(training_id=training_id, boss_id=boss_id))
        await self.session.flush()

    async def detach_boss(self, training_id: int, boss_id: int) -> None:
        await self.session.execute(
            delete(TrainingBossRow).where(
                TrainingBossRow.training_id == training_id,
                TrainingBossRow.boss_id == boss_id,
            )
        )

    async def get_training_bosses(self, training_id: int) -> list[BossRow]:
        """Bosses attached to a training, in (wing, position) order."""
        stmt = (
            select(BossRow)
            .join(TrainingBossRow, TrainingBossRow.boss_id == BossRow.id)
            .where(TrainingBossRow.training_id == training_id)
            .order_by(BossRow.wing, BossRow.position, BossRow.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_boss_preferences(self, training_id: int, boss_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(SignupBossPreferenceRow)
            .join(SignupRow, SignupRow.id == SignupBossPreferenceRow.signup_id)
            .where(
                SignupRow.training_id == training_id,
                SignupBossPreferenceRow.boss_id == boss_id,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    # --- Participants ---

    async def upsert_participant(self, external_id: int, account_name: str) -> ParticipantRow:
        row = await self.get_participant_by_external_id(external_id)
        if row is None:
            row = ParticipantRow(external_id=external_id, account_name=account_name)
            self.session.add(row)
        else:
            row.account_name = account_name
        await self.session.flush()
        return row

    async def get_participant_by_external_id(self, external_id: int) -> ParticipantRow | None:
        stmt = select(ParticipantRow).where(ParticipantRow.external_id == external_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_participants(self, participant_ids: list[int]) -> dict[int, ParticipantRow]:
        if not participant_ids:
            return {}
        stmt = select(ParticipantRow).where(ParticipantRow.id.in_(participant_ids))
        result = await self.session.execute(stmt)
        return {row.id: row for row in result.scalars().all()}

    # --- Signups ---

    async def create_signup(
        self,
        training_id: int,
        participant_id: int,
        comment: str | None = None,
    ) -> SignupRow:
        row = SignupRow(training_id=training_id, participant_id=participant_id, comment=comment)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_signup(self, training_id: int, participant_id: int) -> SignupRow | None:
        stmt = select(SignupRow).where(
            SignupRow.training_id == training_id,
            SignupRow.participant_id == participant_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_signup_by_id(self, signup_id: int) -> SignupRow | None:
        return await self.session.get(SignupRow, signup_id)

    async def get_signups_for_training(self, training_id: int) -> list[SignupRow]:
        """Signups in registration order (id breaks timestamp ties)."""
        stmt = (
            select(SignupRow)
            .where(SignupRow.training_id == training_id)
            .order_by(SignupRow.created_at, SignupRow.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def set_signup_roles(self, signup_id: int, role_ids: set[int]) -> None:
        """Replace a signup's accepted-role set wholesale."""
        await self.session.execute(
            delete(SignupRoleRow).where(SignupRoleRow.signup_id == signup_id)
        )
        for role_id in sorted(role_ids):
            self.session.add(SignupRoleRow(signup_id=signup_id, role_id=role_id))
        await self.session.flush()

    async def set_signup_preferences(self, signup_id: int, boss_ids: set[int]) -> None:
        """Replace a signup's preferred bosses wholesale."""
        await self.session.execute(
            delete(SignupBossPreferenceRow).where(SignupBossPreferenceRow.signup_id == signup_id)
        )
        for boss_id in sorted(boss_ids):
            self.session.add(SignupBossPreferenceRow(signup_id=signup_id, boss_id=boss_id))
        await self.session.flush()

    async def get_role_ids_by_signup(self, training_id: int) -> dict[int, set[int]]:
        """signup_id -> accepted role ids, for every signup of a training."""
        stmt = (
            select(SignupRoleRow.signup_id, SignupRoleRow.role_id)
            .join(SignupRow, SignupRow.id == SignupRoleRow.signup_id)
            .where(SignupRow.training_id == training_id)
        )
        result = await self.session.execute(stmt)
        accepted: dict[int, set[int]] = {}
        for signup_id, role_id in result.all():
            accepted.setdefault(signup_id, set()).add(role_id)
        return accepted

    async def get_boss_ids_by_signup(self, training_id: int) -> dict[int, set[int]]:
        """signup_id -> preferred boss ids, for every signup of a training."""
        stmt = (
            select(SignupBossPreferenceRow.signup_id, SignupBossPreferenceRow.boss_id)
            .join(SignupRow, SignupRow.id == SignupBossPreferenceRow.signup_id)
            .where(SignupRow.training_id == training_id)
        )
        result = await self.session.execute(stmt)
        preferred: dict[int, set[int]] = {}
        for signup_id, boss_id in result.all():
            preferred.setdefault(signup_id, set()).add(boss_id)
        return preferred

    async def count_role_acceptances(self, training_id: int, role_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(SignupRoleRow)
            .join(SignupRow, SignupRow.id == SignupRoleRow.signup_id)
            .where(SignupRow.training_id == training_id, SignupRoleRow.role_id == role_id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def delete_signup(self, signup: SignupRow) -> None:
        """Remove a signup together with its acceptances and preferences."""
        await self.session.execute(
            delete(SignupBossPreferenceRow).where(SignupBossPreferenceRow.signup_id == signup.id)
        )
        await self.session.execute(
            delete(SignupRoleRow).where(SignupRoleRow.signup_id == signup.id)
        )
        await self.session.delete(signup)
        await self.session.flush()

    # --- Assignments ---

    async def get_assignment(self, training_id: int) -> AssignmentRow | None:
        return await self.session.get(AssignmentRow, training_id)

    async def save_assignment(
        self,
        training_id: int,
        payload: dict,
        frozen: bool = False,
    ) -> AssignmentRow:
        """Insert or replace the committed assignment for a training."""
        row = await self.get_assignment(training_id)
        if row is None:
            row = AssignmentRow(training_id=training_id, payload=payload, frozen=frozen)
            self.session.add(row)
        else:
            row.payload = payload
            row.frozen = frozen
            row.resolved_at = datetime.now(UTC)
        await self.session.flush()
        return row

    async def delete_assignment(self, training_id: int) -> None:
        await self.session.execute(
            delete(AssignmentRow).where(AssignmentRow.training_id == training_id)
        )
