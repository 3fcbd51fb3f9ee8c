"""Tier gate -- external group membership to eligibility tier.

A tier is linked to any number of external groups (Discord roles). A
participant's tier is the highest-ranked tier reachable from the groups
they belong to. Membership comes from an external oracle and may be stale;
resolution is best-effort and never cached here.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from crossroads.core.errors import Conflict, InUse, NotFound
from crossroads.models.roster import UNRESTRICTED_TIER, Tier

if TYPE_CHECKING:
    from crossroads.db.models import TierMappingRow, TierRow
    from crossroads.db.repository import Repository

logger = logging.getLogger(__name__)


class MembershipOracle(Protocol):
    """Answers which external groups a participant currently belongs to."""

    async def external_group_ids_for(self, participant_external_id: int) -> set[int]: ...


class StaticMembershipOracle:
    """In-memory oracle. Used when Discord is disabled, and in tests."""

    def __init__(self, memberships: dict[int, set[int]] | None = None) -> None:
        self._memberships: dict[int, set[int]] = {
            k: set(v) for k, v in (memberships or {}).items()
        }

    def set_groups(self, participant_external_id: int, group_ids: set[int]) -> None:
        self._memberships[participant_external_id] = set(group_ids)

    async def external_group_ids_for(self, participant_external_id: int) -> set[int]:
        return set(self._memberships.get(participant_external_id, set()))


def tier_from_row(row: TierRow) -> Tier:
    return Tier(id=row.id, name=row.name, rank=row.rank)


def highest_tier(candidates: list[Tier]) -> Tier:
    """Pick the most permissive tier; ties go to the lowest id for stability."""
    if not candidates:
        return UNRESTRICTED_TIER
    return max(candidates, key=lambda t: (t.rank, -(t.id or 0)))


async def resolve_tier(repo: Repository, external_group_ids: set[int]) -> Tier:
    """Resolve a set of external group ids to the participant's tier."""
    rows = await repo.get_tiers_for_groups(set(external_group_ids))
    return highest_tier([tier_from_row(r) for r in rows])


def check_admission(required: Tier | None, resolved: Tier) -> bool:
    """True iff there is no requirement or ``resolved`` ranks at least as high."""
    if required is None:
        return True
    return resolved.rank >= required.rank


async def required_tier(repo: Repository, tier_id: int | None) -> Tier | None:
    if tier_id is None:
        return None
    row = await repo.get_tier(tier_id)
    if row is None:
        raise NotFound(f"Tier {tier_id} not found")
    return tier_from_row(row)


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


async def load_tier(repo: Repository, name: str) -> TierRow:
    tier = await repo.get_tier_by_name(name)
    if tier is None:
        raise NotFound(f"Tier {name!r} does not exist")
    return tier


async def create_tier(repo: Repository, name: str, rank: int = 1) -> TierRow:
    # Rank 0 is the unrestricted level every participant holds.
    if rank < 1:
        raise ValueError(f"rank must be at least 1, got {rank}")
    if await repo.get_tier_by_name(name) is not None:
        raise Conflict(f"Tier {name!r} already exists")
    tier = await repo.create_tier(name, rank)
    logger.info("tier_created tier=%s name=%s rank=%d", tier.id, name, rank)
    return tier


async def delete_tier(repo: Repository, name: str) -> None:
    tier = await load_tier(repo, name)
    in_use = await repo.count_trainings_for_tier(tier.id)
    if in_use:
        raise InUse(f"Tier {name!r} is required by {in_use} training(s)")
    await repo.delete_tier(tier)
    logger.info("tier_deleted name=%s", name)


async def add_tier_mapping(repo: Repository, name: str, external_group_id: int) -> TierMappingRow:
    tier = await load_tier(repo, name)
    if await repo.get_tier_mapping(tier.id, external_group_id) is not None:
        raise Conflict(f"Group {external_group_id} is already linked to tier {name!r}")
    mapping = await repo.add_tier_mapping(tier.id, external_group_id)
    logger.info("tier_mapping_added tier=%s group=%s", name, external_group_id)
    return mapping


async def remove_tier_mapping(repo: Repository, name: str, external_group_id: int) -> None:
    tier = await load_tier(repo, name)
    mapping = await repo.get_tier_mapping(tier.id, external_group_id)
    if mapping is None:
        raise NotFound(f"Group {external_group_id} is not linked to tier {name!r}")
    await repo.delete_tier_mapping(mapping)
    logger.info("tier_mapping_removed tier=%s group=%s", name, external_group_id)


async def list_tiers(repo: Repository) -> list[tuple[TierRow, list[int]]]:
    """Every tier with the external group ids linked to it."""
    return [(tier, await repo.get_tier_group_ids(tier.id)) for tier in await repo.list_tiers()]
