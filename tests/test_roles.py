"""Tests for the role catalog and required slots."""

from datetime import datetime

import pytest

from crossroads.core import roles
from crossroads.core.errors import (
    Conflict,
    IllegalState,
    InUse,
    InvalidPriority,
    InvalidReference,
    NotFound,
)
from crossroads.core.lifecycle import TrainingState, advance_training, create_training
from crossroads.db.models import TrainingRow
from crossroads.db.repository import Repository


@pytest.fixture
async def training(repo: Repository, training_date: datetime) -> TrainingRow:
    return await create_training(repo, "Raid basics", training_date)


class TestCatalog:
    async def test_default_priority(self, repo: Repository):
        role = await roles.create_role(repo, "Damage", "dps", 111)
        assert role.priority == 2
        assert role.active is True

    @pytest.mark.parametrize("priority", [-1, 5])
    async def test_priority_range(self, repo: Repository, priority: int):
        with pytest.raises(InvalidPriority):
            await roles.create_role(repo, "Damage", "dps", 111, priority)

    async def test_duplicate_active_key(self, repo: Repository):
        await roles.create_role(repo, "Damage", "dps", 111)
        with pytest.raises(Conflict):
            await roles.create_role(repo, "Damage again", "dps", 111)

    async def test_key_reusable_after_deactivation(self, repo: Repository):
        old = await roles.create_role(repo, "Damage", "dps", 111)
        await roles.deactivate_role(repo, old.id)
        new = await roles.create_role(repo, "Damage", "dps", 111)
        assert new.id != old.id

    async def test_list_active_ordering(self, repo: Repository):
        dps = await roles.create_role(repo, "Damage", "dps", 1, 3)
        heal = await roles.create_role(repo, "Healer", "heal", 2, 1)
        tank = await roles.create_role(repo, "Tank", "tank", 3, 0)
        boon = await roles.create_role(repo, "Boon", "boon", 4, 1)
        await roles.deactivate_role(repo, boon.id)

        listed = await roles.list_active_roles(repo)
        assert [r.id for r in listed] == [tank.id, heal.id, dps.id]

    async def test_lookup_by_repr(self, repo: Repository):
        role = await roles.create_role(repo, "Tank", "tank", 3, 0)
        assert (await roles.get_role_by_repr(repo, "tank")).id == role.id
        await roles.deactivate_role(repo, role.id)
        with pytest.raises(NotFound):
            await roles.get_role_by_repr(repo, "tank")

    async def test_deactivate_unknown(self, repo: Repository):
        with pytest.raises(NotFound):
            await roles.deactivate_role(repo, 12)


class TestRequiredSlots:
    async def test_add_accumulates(self, repo: Repository, training: TrainingRow):
        tank = await roles.create_role(repo, "Tank", "tank", 3, 0)
        await roles.add_required_slot(repo, training.id, tank.id)
        counts = await roles.add_required_slot(repo, training.id, tank.id, 2)
        assert counts == {tank.id: 3}

    async def test_inactive_role_rejected(self, repo: Repository, training: TrainingRow):
        tank = await roles.create_role(repo, "Tank", "tank", 3, 0)
        await roles.deactivate_role(repo, tank.id)
        with pytest.raises(InvalidReference):
            await roles.add_required_slot(repo, training.id, tank.id)

    async def test_unknown_training(self, repo: Repository):
        tank = await roles.create_role(repo, "Tank", "tank", 3, 0)
        with pytest.raises(NotFound):
            await roles.add_required_slot(repo, 999, tank.id)

    async def test_locked_after_publish_window(self, repo: Repository, training: TrainingRow):
        tank = await roles.create_role(repo, "Tank", "tank", 3, 0)
        await roles.add_required_slot(repo, training.id, tank.id)
        await advance_training(repo, training.id, TrainingState.PUBLISHED)
        await roles.add_required_slot(repo, training.id, tank.id)
        await advance_training(repo, training.id, TrainingState.CLOSED)

        with pytest.raises(IllegalState):
            await roles.add_required_slot(repo, training.id, tank.id)
        with pytest.raises(IllegalState):
            await roles.remove_required_slot(repo, training.id, tank.id)

    async def test_remove(self, repo: Repository, training: TrainingRow):
        tank = await roles.create_role(repo, "Tank", "tank", 3, 0)
        await roles.add_required_slot(repo, training.id, tank.id, 2)
        assert await roles.remove_required_slot(repo, training.id, tank.id) == {tank.id: 1}
        assert await roles.remove_required_slot(repo, training.id, tank.id) == {}

    async def test_remove_unattached(self, repo: Repository, training: TrainingRow):
        tank = await roles.create_role(repo, "Tank", "tank", 3, 0)
        with pytest.raises(InvalidReference):
            await roles.remove_required_slot(repo, training.id, tank.id)

    async def test_last_slot_of_accepted_role_in_use(
        self, repo: Repository, training: TrainingRow
    ):
        tank = await roles.create_role(repo, "Tank", "tank", 3, 0)
        await roles.add_required_slot(repo, training.id, tank.id, 2)
        participant = await repo.upsert_participant(1, "One.1111")
        signup = await repo.create_signup(training.id, participant.id)
        await repo.set_signup_roles(signup.id, {tank.id})

        # Dropping one of two openings is fine; the role is still required.
        await roles.remove_required_slot(repo, training.id, tank.id)
        with pytest.raises(InUse):
            await roles.remove_required_slot(repo, training.id, tank.id)
        assert await roles.required_slots(repo, training.id) == {tank.id: 1}

    async def test_count_must_be_positive(self, repo: Repository, training: TrainingRow):
        tank = await roles.create_role(repo, "Tank", "tank", 3, 0)
        with pytest.raises(ValueError):
            await roles.add_required_slot(repo, training.id, tank.id, 0)
