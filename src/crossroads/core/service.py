"""Host-facing facade over the training core.

Each call is one unit of work: it opens a session that commits on success
and rolls back on any error, so a transition or a resolver run is either
fully visible or not at all. Calls that mutate a training also hold that
training's lock for their whole duration. Events are published only after
the commit.

Usage:
    service = TrainingService(engine, EventBus(), StaticMembershipOracle())
    training = await service.create_training("Raid basics", date)
    await service.advance(training.id, TrainingState.PUBLISHED)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncEngine

from crossroads.config import DEFAULT_ROLE_PRIORITY
from crossroads.core import bosses, export, lifecycle, resolver, roles, signups, tiers
from crossroads.core.errors import NotFound
from crossroads.core.event_bus import DeferredPublisher, EventBus
from crossroads.core.lifecycle import TrainingState
from crossroads.core.locks import TrainingLocks
from crossroads.core.tiers import MembershipOracle
from crossroads.db.engine import get_session
from crossroads.db.models import (
    BossRow,
    ParticipantRow,
    RoleRow,
    SignupRow,
    TierMappingRow,
    TierRow,
    TrainingRow,
    TrainingStateChangeRow,
)
from crossroads.db.repository import Repository
from crossroads.models.roster import Assignment, SignupView, Tier

logger = logging.getLogger(__name__)


class TrainingService:
    """Typed operations on trainings, roles, tiers, bosses and signups."""

    def __init__(
        self,
        engine: AsyncEngine,
        event_bus: EventBus | None = None,
        oracle: MembershipOracle | None = None,
        locks: TrainingLocks | None = None,
        default_role_priority: int = DEFAULT_ROLE_PRIORITY,
    ) -> None:
        self.engine = engine
        self.event_bus = event_bus or EventBus()
        self.oracle: MembershipOracle = oracle or tiers.StaticMembershipOracle()
        self.locks = locks or TrainingLocks()
        self.default_role_priority = default_role_priority
        # Catalog edits (roles, tiers, bosses) are global, not per training.
        self._catalog_lock = asyncio.Lock()

    @asynccontextmanager
    async def _read(self) -> AsyncGenerator[Repository, None]:
        async with get_session(self.engine) as session:
            yield Repository(session)

    @asynccontextmanager
    async def _write(
        self,
        training_id: int | None = None,
    ) -> AsyncGenerator[tuple[Repository, DeferredPublisher], None]:
        """Lock, open a session, and publish buffered events once it commits."""
        guard = self._catalog_lock if training_id is None else self.locks.hold(training_id)
        outbox = DeferredPublisher(self.event_bus)
        async with guard:
            try:
                async with get_session(self.engine) as session:
                    yield Repository(session), outbox
            except Exception as exc:
                outbox.discard()
                logger.info(
                    "unit_rolled_back training=%s error=%s",
                    training_id,
                    type(exc).__name__,
                )
                raise
        await outbox.flush()

    # --- Trainings ---

    async def create_training(
        self,
        title: str,
        date: datetime,
        tier_id: int | None = None,
    ) -> TrainingRow:
        async with self._write() as (repo, _):
            return await lifecycle.create_training(repo, title, date, tier_id)

    async def advance(self, training_id: int, to_state: TrainingState) -> TrainingStateChangeRow:
        """Move a training one step forward.

        Entering STARTED also freezes the assignment in the same transaction.
        """
        async with self._write(training_id) as (repo, outbox):
            change = await lifecycle.advance_training(repo, training_id, to_state, outbox)
            if to_state == TrainingState.STARTED:
                await resolver.freeze_assignment(repo, training_id, outbox)
            return change

    async def set_training_tier(self, training_id: int, tier_id: int | None) -> TrainingRow:
        async with self._write(training_id) as (repo, _):
            return await lifecycle.set_training_tier(repo, training_id, tier_id)

    async def delete_training(self, training_id: int) -> None:
        async with self._write(training_id) as (repo, _):
            await lifecycle.delete_training(repo, training_id)
        self.locks.forget(training_id)

    async def get_training(self, training_id: int) -> TrainingRow:
        async with self._read() as repo:
            return await lifecycle.load_training(repo, training_id)

    async def list_trainings(self, state: TrainingState | None = None) -> list[TrainingRow]:
        async with self._read() as repo:
            return await repo.list_trainings(state.value if state else None)

    async def count_by_state(self) -> dict[TrainingState, int]:
        async with self._read() as repo:
            return await lifecycle.count_by_state(repo)

    async def state_history(self, training_id: int) -> list[TrainingStateChangeRow]:
        async with self._read() as repo:
            await lifecycle.load_training(repo, training_id)
            return await repo.get_state_history(training_id)

    # --- Roles and slots ---

    async def create_role(
        self,
        title: str,
        repr: str,
        emoji: int,
        priority: int | None = None,
    ) -> RoleRow:
        """Add a role; without a priority it gets the configured default."""
        if priority is None:
            priority = self.default_role_priority
        async with self._write() as (repo, _):
            return await roles.create_role(repo, title, repr, emoji, priority)

    async def deactivate_role(self, role_id: int) -> RoleRow:
        async with self._write() as (repo, _):
            return await roles.deactivate_role(repo, role_id)

    async def list_active_roles(self) -> list[RoleRow]:
        async with self._read() as repo:
            return await roles.list_active_roles(repo)

    async def get_role_by_repr(self, repr: str) -> RoleRow:
        async with self._read() as repo:
            return await roles.get_role_by_repr(repo, repr)

    async def add_required_slot(
        self,
        training_id: int,
        role_id: int,
        count: int = 1,
    ) -> dict[int, int]:
        async with self._write(training_id) as (repo, _):
            return await roles.add_required_slot(repo, training_id, role_id, count)

    async def remove_required_slot(
        self,
        training_id: int,
        role_id: int,
        count: int = 1,
    ) -> dict[int, int]:
        async with self._write(training_id) as (repo, _):
            return await roles.remove_required_slot(repo, training_id, role_id, count)

    async def required_slots(self, training_id: int) -> dict[int, int]:
        async with self._read() as repo:
            return await roles.required_slots(repo, training_id)

    # --- Tiers ---

    async def create_tier(self, name: str, rank: int = 1) -> TierRow:
        async with self._write() as (repo, _):
            return await tiers.create_tier(repo, name, rank)

    async def delete_tier(self, name: str) -> None:
        async with self._write() as (repo, _):
            await tiers.delete_tier(repo, name)

    async def add_tier_mapping(self, name: str, external_group_id: int) -> TierMappingRow:
        async with self._write() as (repo, _):
            return await tiers.add_tier_mapping(repo, name, external_group_id)

    async def remove_tier_mapping(self, name: str, external_group_id: int) -> None:
        async with self._write() as (repo, _):
            await tiers.remove_tier_mapping(repo, name, external_group_id)

    async def list_tiers(self) -> list[tuple[TierRow, list[int]]]:
        async with self._read() as repo:
            return await tiers.list_tiers(repo)

    async def tier_of(self, participant_external_id: int) -> Tier:
        groups = await self.oracle.external_group_ids_for(participant_external_id)
        async with self._read() as repo:
            return await tiers.resolve_tier(repo, groups)

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
        async with self._write() as (repo, _):
            return await bosses.create_boss(repo, repr, name, wing, position, emoji, url)

    async def list_bosses(self) -> list[BossRow]:
        async with self._read() as repo:
            return await repo.list_bosses()

    async def attach_boss(self, training_id: int, boss_id: int) -> list[BossRow]:
        async with self._write(training_id) as (repo, _):
            return await bosses.attach_boss(repo, training_id, boss_id)

    async def detach_boss(self, training_id: int, boss_id: int) -> list[BossRow]:
        async with self._write(training_id) as (repo, _):
            return await bosses.detach_boss(repo, training_id, boss_id)

    async def training_bosses(self, training_id: int) -> list[BossRow]:
        async with self._read() as repo:
            return await bosses.training_bosses(repo, training_id)

    async def set_preferences(
        self,
        training_id: int,
        participant_external_id: int,
        boss_ids: set[int],
    ) -> set[int]:
        async with self._write(training_id) as (repo, _):
            participant = await signups.load_participant(repo, participant_external_id)
            signup = await repo.get_signup(training_id, participant.id)
            if signup is None:
                raise NotFound(
                    f"Participant {participant_external_id} is not signed up for {training_id}"
                )
            return await bosses.set_preferences(repo, signup.id, boss_ids)

    # --- Participants and signups ---

    async def register_participant(self, external_id: int, account_name: str) -> ParticipantRow:
        async with self._write() as (repo, _):
            return await signups.register_participant(repo, external_id, account_name)

    async def register(
        self,
        training_id: int,
        participant_external_id: int,
        accepted_role_ids: set[int],
        boss_preferences: set[int] | None = None,
        comment: str | None = None,
    ) -> SignupRow:
        # Membership lookup may hit the network; do it before taking the lock.
        groups = await self.oracle.external_group_ids_for(participant_external_id)
        async with self._write(training_id) as (repo, _):
            return await signups.register(
                repo,
                training_id,
                participant_external_id,
                accepted_role_ids,
                external_group_ids=groups,
                boss_preferences=boss_preferences,
                comment=comment,
            )

    async def withdraw(self, training_id: int, participant_external_id: int) -> None:
        async with self._write(training_id) as (repo, _):
            await signups.withdraw(repo, training_id, participant_external_id)

    async def set_comment(
        self,
        training_id: int,
        participant_external_id: int,
        comment: str | None,
    ) -> SignupRow:
        async with self._write(training_id) as (repo, _):
            return await signups.set_comment(repo, training_id, participant_external_id, comment)

    async def list_signups(self, training_id: int) -> list[SignupView]:
        async with self._read() as repo:
            return await signups.list_signups(repo, training_id)

    async def joinable_trainings(self, participant_external_id: int) -> list[TrainingRow]:
        groups = await self.oracle.external_group_ids_for(participant_external_id)
        async with self._read() as repo:
            return await signups.joinable_trainings(repo, participant_external_id, groups)

    # --- Assignment ---

    async def resolve(self, training_id: int) -> Assignment:
        """Run (or re-run as a preview) the resolver on a closed training."""
        async with self._write(training_id) as (repo, outbox):
            return await resolver.run_resolver(repo, training_id, outbox)

    async def get_assignment(self, training_id: int) -> Assignment:
        async with self._read() as repo:
            return await resolver.get_assignment(repo, training_id)

    async def export_assignment_csv(self, training_id: int) -> str:
        async with self._read() as repo:
            return await export.export_assignment_csv(repo, training_id)

    async def export_signups_csv(self, training_ids: list[int]) -> tuple[str, list[str]]:
        async with self._read() as repo:
            return await export.export_signups_csv(repo, training_ids)
