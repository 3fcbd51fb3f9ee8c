"""Role catalog and the required slots a training attaches from it.

Roles are never deleted, only deactivated, so historical signups and
assignments keep resolving to a title and code.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crossroads.config import DEFAULT_ROLE_PRIORITY, MAX_ROLE_PRIORITY, MIN_ROLE_PRIORITY
from crossroads.core.errors import Conflict, InUse, InvalidPriority, InvalidReference, NotFound
from crossroads.core.lifecycle import EDITABLE_STATES, load_training, require_state

if TYPE_CHECKING:
    from crossroads.db.models import RoleRow
    from crossroads.db.repository import Repository

logger = logging.getLogger(__name__)


def validate_priority(priority: int) -> int:
    if not MIN_ROLE_PRIORITY <= priority <= MAX_ROLE_PRIORITY:
        raise InvalidPriority(
            f"Priority {priority} outside {MIN_ROLE_PRIORITY}..{MAX_ROLE_PRIORITY}"
        )
    return priority


async def create_role(
    repo: Repository,
    title: str,
    repr: str,
    emoji: int,
    priority: int = DEFAULT_ROLE_PRIORITY,
) -> RoleRow:
    """Add a role to the catalog.

    Raises:
        InvalidPriority: priority outside 0..4.
        Conflict: an active role already uses this (repr, emoji) pair.
    """
    validate_priority(priority)
    if await repo.get_active_role_by_key(repr, emoji) is not None:
        raise Conflict(f"An active role with code {repr!r} and emoji {emoji} already exists")
    role = await repo.create_role(title, repr, emoji, priority)
    logger.info("role_created role=%s repr=%s priority=%d", role.id, repr, priority)
    return role


async def deactivate_role(repo: Repository, role_id: int) -> RoleRow:
    role = await repo.get_role(role_id)
    if role is None:
        raise NotFound(f"Role {role_id} not found")
    if role.active:
        await repo.deactivate_role(role)
        logger.info("role_deactivated role=%s repr=%s", role.id, role.repr)
    return role


async def list_active_roles(repo: Repository) -> list[RoleRow]:
    return await repo.list_active_roles()


async def get_role_by_repr(repo: Repository, repr: str) -> RoleRow:
    role = await repo.get_active_role_by_repr(repr)
    if role is None:
        raise NotFound(f"No active role with code {repr!r}")
    return role


# ---------------------------------------------------------------------------
# Required slots
# ---------------------------------------------------------------------------


async def add_required_slot(
    repo: Repository,
    training_id: int,
    role_id: int,
    count: int = 1,
) -> dict[int, int]:
    """Open ``count`` more positions for a role. Returns the new slot counts."""
    if count < 1:
        raise ValueError(f"count must be positive, got {count}")
    training = await load_training(repo, training_id)
    require_state(training, EDITABLE_STATES, "add slots to")

    role = await repo.get_role(role_id)
    if role is None or not role.active:
        raise InvalidReference(f"Role {role_id} is not an active role")

    await repo.add_slots(training_id, role_id, count)
    logger.info("slots_added training=%s role=%s count=%d", training_id, role_id, count)
    return await repo.get_slot_counts(training_id)


async def remove_required_slot(
    repo: Repository,
    training_id: int,
    role_id: int,
    count: int = 1,
) -> dict[int, int]:
    """Close up to ``count`` positions for a role. Returns the new slot counts.

    Removing the last opening of a role that signups accept would orphan
    their acceptances, so that fails with InUse.
    """
    if count < 1:
        raise ValueError(f"count must be positive, got {count}")
    training = await load_training(repo, training_id)
    require_state(training, EDITABLE_STATES, "remove slots from")

    current = (await repo.get_slot_counts(training_id)).get(role_id, 0)
    if current == 0:
        raise InvalidReference(f"Role {role_id} is not attached to training {training_id}")
    if count >= current and await repo.count_role_acceptances(training_id, role_id) > 0:
        raise InUse(f"Role {role_id} is accepted by signups of training {training_id}")

    removed = await repo.remove_slots(training_id, role_id, count)
    logger.info("slots_removed training=%s role=%s count=%d", training_id, role_id, removed)
    return await repo.get_slot_counts(training_id)


async def required_slots(repo: Repository, training_id: int) -> dict[int, int]:
    await load_training(repo, training_id)
    return await repo.get_slot_counts(training_id)
