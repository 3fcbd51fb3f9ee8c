"""Tests for the signup registry: registration, withdrawal, listings."""

from datetime import datetime

import pytest

from crossroads.core import bosses, roles, signups, tiers
from crossroads.core.errors import Forbidden, IllegalState, InvalidReference, NotFound
from crossroads.core.lifecycle import TrainingState, advance_training, create_training
from crossroads.db.models import RoleRow, TrainingRow
from crossroads.db.repository import Repository


@pytest.fixture
async def tank(repo: Repository) -> RoleRow:
    return await roles.create_role(repo, "Tank", "tank", 1, 0)


@pytest.fixture
async def dps(repo: Repository) -> RoleRow:
    return await roles.create_role(repo, "Damage", "dps", 2, 3)


@pytest.fixture
async def training(
    repo: Repository, training_date: datetime, tank: RoleRow, dps: RoleRow
) -> TrainingRow:
    training = await create_training(repo, "Raid basics", training_date)
    await roles.add_required_slot(repo, training.id, tank.id)
    await roles.add_required_slot(repo, training.id, dps.id, 2)
    await advance_training(repo, training.id, TrainingState.PUBLISHED)
    return training


@pytest.fixture
async def participants(repo: Repository) -> None:
    await signups.register_participant(repo, 1, "One.1111")
    await signups.register_participant(repo, 2, "Two.2222")


async def _register(repo: Repository, training_id: int, who: int, role_ids: set[int], **kw):
    return await signups.register(repo, training_id, who, role_ids, external_group_ids=set(), **kw)


class TestParticipants:
    async def test_blank_account_name(self, repo: Repository):
        with pytest.raises(ValueError):
            await signups.register_participant(repo, 1, "   ")

    async def test_unknown_participant(self, repo: Repository, training: TrainingRow, tank):
        with pytest.raises(NotFound):
            await _register(repo, training.id, 404, {tank.id})


@pytest.mark.usefixtures("participants")
class TestRegister:
    async def test_creates_signup(self, repo: Repository, training: TrainingRow, tank, dps):
        signup = await _register(repo, training.id, 1, {tank.id, dps.id}, comment="late 10m")
        assert signup.comment == "late 10m"
        assert await repo.get_role_ids_by_signup(training.id) == {signup.id: {tank.id, dps.id}}

    async def test_double_register_replaces_roles(
        self, repo: Repository, training: TrainingRow, tank, dps
    ):
        first = await _register(repo, training.id, 1, {tank.id, dps.id})
        created_at = first.created_at
        second = await _register(repo, training.id, 1, {dps.id})

        assert second.id == first.id
        assert second.created_at == created_at
        assert len(await repo.get_signups_for_training(training.id)) == 1
        assert await repo.get_role_ids_by_signup(training.id) == {first.id: {dps.id}}

    async def test_not_published(self, repo: Repository, training: TrainingRow, tank):
        await advance_training(repo, training.id, TrainingState.CLOSED)
        with pytest.raises(IllegalState):
            await _register(repo, training.id, 1, {tank.id})

    async def test_empty_roles(self, repo: Repository, training: TrainingRow):
        with pytest.raises(InvalidReference):
            await _register(repo, training.id, 1, set())

    async def test_role_not_required(self, repo: Repository, training: TrainingRow):
        heal = await roles.create_role(repo, "Healer", "heal", 3, 1)
        with pytest.raises(InvalidReference):
            await _register(repo, training.id, 1, {heal.id})

    async def test_unattached_boss_preference(
        self, repo: Repository, training: TrainingRow, tank
    ):
        vg = await bosses.create_boss(repo, "vg", "Vale Guardian", 1, 1)
        with pytest.raises(InvalidReference):
            await _register(repo, training.id, 1, {tank.id}, boss_preferences={vg.id})


@pytest.mark.usefixtures("participants")
class TestTierGate:
    async def test_forbidden_below_requirement(
        self, repo: Repository, training_date: datetime, tank
    ):
        await tiers.create_tier(repo, "veteran", 2)
        await tiers.create_tier(repo, "basic", 1)
        await tiers.add_tier_mapping(repo, "veteran", 20)
        await tiers.add_tier_mapping(repo, "basic", 10)
        veteran = await repo.get_tier_by_name("veteran")

        gated = await create_training(repo, "Gated", training_date, tier_id=veteran.id)
        await roles.add_required_slot(repo, gated.id, tank.id)
        await advance_training(repo, gated.id, TrainingState.PUBLISHED)

        with pytest.raises(Forbidden):
            await signups.register(repo, gated.id, 1, {tank.id}, external_group_ids={10})
        with pytest.raises(Forbidden):
            await signups.register(repo, gated.id, 1, {tank.id}, external_group_ids=set())

        signup = await signups.register(repo, gated.id, 2, {tank.id}, external_group_ids={20})
        assert signup.training_id == gated.id

    async def test_lowest_tier_requires_membership(
        self, repo: Repository, training_date: datetime, tank
    ):
        veterans = await tiers.create_tier(repo, "veterans", 1)
        await tiers.add_tier_mapping(repo, "veterans", 555)
        gated = await create_training(repo, "Gated", training_date, tier_id=veterans.id)
        await roles.add_required_slot(repo, gated.id, tank.id)
        await advance_training(repo, gated.id, TrainingState.PUBLISHED)

        with pytest.raises(Forbidden):
            await signups.register(repo, gated.id, 1, {tank.id}, external_group_ids=set())
        signup = await signups.register(repo, gated.id, 2, {tank.id}, external_group_ids={555})
        assert signup.training_id == gated.id

    async def test_joinable_trainings(self, repo: Repository, training_date: datetime):
        basic = await tiers.create_tier(repo, "basic", 1)
        await tiers.add_tier_mapping(repo, "basic", 10)
        open_one = await create_training(repo, "Open", training_date.replace(day=9))
        gated = await create_training(repo, "Gated", training_date.replace(day=8), tier_id=basic.id)
        await create_training(repo, "Draft", training_date)
        for t in (open_one, gated):
            await advance_training(repo, t.id, TrainingState.PUBLISHED)

        outsider = await signups.joinable_trainings(repo, 1, set())
        member = await signups.joinable_trainings(repo, 1, {10})
        assert [t.title for t in outsider] == ["Open"]
        assert [t.title for t in member] == ["Gated", "Open"]


@pytest.mark.usefixtures("participants")
class TestWithdraw:
    async def test_withdraw_while_published(
        self, repo: Repository, training: TrainingRow, tank
    ):
        await _register(repo, training.id, 1, {tank.id})
        await signups.withdraw(repo, training.id, 1)
        assert await repo.get_signups_for_training(training.id) == []
        assert await repo.count_role_acceptances(training.id, tank.id) == 0

    async def test_not_signed_up(self, repo: Repository, training: TrainingRow):
        with pytest.raises(NotFound):
            await signups.withdraw(repo, training.id, 2)

    async def test_closed_discards_preview(self, repo: Repository, training: TrainingRow, tank):
        await _register(repo, training.id, 1, {tank.id})
        await advance_training(repo, training.id, TrainingState.CLOSED)
        await repo.save_assignment(training.id, {"training_id": training.id})

        await signups.withdraw(repo, training.id, 1)
        assert await repo.get_assignment(training.id) is None

    async def test_refused_once_started(self, repo: Repository, training: TrainingRow, tank):
        await _register(repo, training.id, 1, {tank.id})
        await advance_training(repo, training.id, TrainingState.CLOSED)
        await advance_training(repo, training.id, TrainingState.STARTED)
        with pytest.raises(IllegalState):
            await signups.withdraw(repo, training.id, 1)


@pytest.mark.usefixtures("participants")
class TestListingAndComments:
    async def test_list_in_registration_order(
        self, repo: Repository, training: TrainingRow, tank, dps
    ):
        await _register(repo, training.id, 2, {dps.id})
        await _register(repo, training.id, 1, {tank.id, dps.id}, comment="can swap")

        views = await signups.list_signups(repo, training.id)
        assert [v.account_name for v in views] == ["Two.2222", "One.1111"]
        assert views[1].accepted_role_ids == sorted([tank.id, dps.id])
        assert views[1].comment == "can swap"

    async def test_set_comment(self, repo: Repository, training: TrainingRow, tank):
        await _register(repo, training.id, 1, {tank.id})
        signup = await signups.set_comment(repo, training.id, 1, "bringing food")
        assert signup.comment == "bringing food"
        cleared = await signups.set_comment(repo, training.id, 1, "")
        assert cleared.comment is None
