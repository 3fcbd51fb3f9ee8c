"""Tests for the tier gate: resolution, admission, administration."""

from datetime import datetime

import pytest

from crossroads.core import tiers
from crossroads.core.errors import Conflict, InUse, NotFound
from crossroads.core.lifecycle import create_training
from crossroads.db.repository import Repository
from crossroads.models.roster import UNRESTRICTED_TIER, Tier


class TestCheckAdmission:
    def test_no_requirement_admits_everyone(self):
        assert tiers.check_admission(None, UNRESTRICTED_TIER) is True

    def test_rank_comparison(self):
        basic = Tier(id=1, name="basic", rank=1)
        veteran = Tier(id=2, name="veteran", rank=2)
        assert tiers.check_admission(basic, veteran) is True
        assert tiers.check_admission(basic, basic) is True
        assert tiers.check_admission(veteran, basic) is False
        assert tiers.check_admission(basic, UNRESTRICTED_TIER) is False


class TestHighestTier:
    def test_empty_is_unrestricted(self):
        assert tiers.highest_tier([]) == UNRESTRICTED_TIER

    def test_highest_rank_wins(self):
        picked = tiers.highest_tier(
            [
                Tier(id=1, name="a", rank=1),
                Tier(id=2, name="b", rank=3),
                Tier(id=3, name="c", rank=2),
            ]
        )
        assert picked.name == "b"

    def test_rank_tie_goes_to_lowest_id(self):
        picked = tiers.highest_tier([Tier(id=5, name="x", rank=2), Tier(id=4, name="y", rank=2)])
        assert picked.id == 4


class TestResolveTier:
    async def test_no_matching_groups(self, repo: Repository):
        await tiers.create_tier(repo, "basic", 1)
        assert await tiers.resolve_tier(repo, {123}) == UNRESTRICTED_TIER

    async def test_highest_of_matching(self, repo: Repository):
        await tiers.create_tier(repo, "basic", 1)
        await tiers.create_tier(repo, "veteran", 2)
        await tiers.add_tier_mapping(repo, "basic", 10)
        await tiers.add_tier_mapping(repo, "veteran", 20)

        assert (await tiers.resolve_tier(repo, {10})).name == "basic"
        assert (await tiers.resolve_tier(repo, {10, 20, 30})).name == "veteran"

    async def test_idempotent(self, repo: Repository):
        await tiers.create_tier(repo, "basic", 1)
        await tiers.add_tier_mapping(repo, "basic", 10)
        first = await tiers.resolve_tier(repo, {10})
        assert await tiers.resolve_tier(repo, {10}) == first


class TestStaticOracle:
    async def test_lookup_and_update(self):
        oracle = tiers.StaticMembershipOracle({1: {10}})
        assert await oracle.external_group_ids_for(1) == {10}
        assert await oracle.external_group_ids_for(2) == set()
        oracle.set_groups(2, {20, 30})
        assert await oracle.external_group_ids_for(2) == {20, 30}


class TestAdministration:
    async def test_duplicate_name(self, repo: Repository):
        await tiers.create_tier(repo, "basic")
        with pytest.raises(Conflict):
            await tiers.create_tier(repo, "basic", 3)

    async def test_duplicate_mapping(self, repo: Repository):
        await tiers.create_tier(repo, "basic")
        await tiers.add_tier_mapping(repo, "basic", 10)
        with pytest.raises(Conflict):
            await tiers.add_tier_mapping(repo, "basic", 10)

    async def test_mapping_on_unknown_tier(self, repo: Repository):
        with pytest.raises(NotFound):
            await tiers.add_tier_mapping(repo, "ghost", 10)

    async def test_remove_mapping(self, repo: Repository):
        await tiers.create_tier(repo, "basic")
        await tiers.add_tier_mapping(repo, "basic", 10)
        await tiers.remove_tier_mapping(repo, "basic", 10)
        with pytest.raises(NotFound):
            await tiers.remove_tier_mapping(repo, "basic", 10)

    async def test_list_with_groups(self, repo: Repository):
        await tiers.create_tier(repo, "veteran", 2)
        await tiers.create_tier(repo, "basic", 1)
        await tiers.add_tier_mapping(repo, "veteran", 21)
        await tiers.add_tier_mapping(repo, "veteran", 20)

        listed = [(t.name, groups) for t, groups in await tiers.list_tiers(repo)]
        assert listed == [("basic", []), ("veteran", [20, 21])]

    async def test_delete_removes_mappings(self, repo: Repository):
        await tiers.create_tier(repo, "basic")
        await tiers.add_tier_mapping(repo, "basic", 10)
        await tiers.delete_tier(repo, "basic")
        assert await tiers.list_tiers(repo) == []
        assert await tiers.resolve_tier(repo, {10}) == UNRESTRICTED_TIER

    async def test_delete_in_use(self, repo: Repository, training_date: datetime):
        tier = await tiers.create_tier(repo, "basic")
        await create_training(repo, "Gated", training_date, tier_id=tier.id)
        with pytest.raises(InUse):
            await tiers.delete_tier(repo, "basic")

    async def test_rank_zero_rejected(self, repo: Repository):
        with pytest.raises(ValueError):
            await tiers.create_tier(repo, "veterans", 0)
        assert await tiers.list_tiers(repo) == []

    async def test_lowest_tier_outranks_unrestricted(self, repo: Repository):
        lowest = tiers.tier_from_row(await tiers.create_tier(repo, "veterans", 1))
        await tiers.add_tier_mapping(repo, "veterans", 555)

        outsider = await tiers.resolve_tier(repo, set())
        assert tiers.check_admission(lowest, outsider) is False
