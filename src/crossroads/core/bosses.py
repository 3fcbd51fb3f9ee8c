"""Boss schedule -- the global boss catalog and per-training boss lists."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crossroads.core.errors import Conflict, IllegalState, InUse, InvalidReference, NotFound
from crossroads.core.lifecycle import (
    EDITABLE_STATES,
    TrainingState,
    load_training,
    require_state,
    training_state,
)

if TYPE_CHECKING:
    from crossroads.db.models import BossRow
    from crossroads.db.repository import Repository

logger = logging.getLogger(__name__)


async def create_boss(
    repo: Repository,
    repr: str,
    name: str,
    wing: int,
    position: int,
    emoji: int | None = None,
    url: str | None = None,
) -> BossRow:
    if await repo.get_boss_by_repr(repr) is not None:
        raise Conflict(f"Boss with code {repr!r} already exists")
    boss = await repo.create_boss(repr, name, wing, position, emoji=emoji, url=url)
    logger.info("boss_created boss=%s repr=%s wing=%d position=%d", boss.id, repr, wing, position)
    return boss


async def attach_boss(repo: Repository, training_id: int, boss_id: int) -> list[BossRow]:
    """Attach a boss to a training. Returns the training's bosses in order.

    Raises:
        IllegalState: the training no longer accepts edits.
        NotFound: unknown boss.
        Conflict: already attached, or another attached boss sits at the
            same (wing, position).
    """
    training = await load_training(repo, training_id)
    require_state(training, EDITABLE_STATES, "attach bosses to")

    boss = await repo.get_boss(boss_id)
    if boss is None:
        raise NotFound(f"Boss {boss_id} not found")

    attached = await repo.get_training_bosses(training_id)
    for other in attached:
        if other.id == boss.id:
            raise Conflict(f"Boss {boss.repr} is already attached to training {training_id}")
        if (other.wing, other.position) == (boss.wing, boss.position):
            raise Conflict(
                f"Boss {boss.repr} collides with {other.repr} at wing {boss.wing} "
                f"position {boss.position}"
            )

    await repo.attach_boss(training_id, boss_id)
    logger.info("boss_attached training=%s boss=%s", training_id, boss.repr)
    return await repo.get_training_bosses(training_id)


async def detach_boss(repo: Repository, training_id: int, boss_id: int) -> list[BossRow]:
    training = await load_training(repo, training_id)
    require_state(training, EDITABLE_STATES, "detach bosses from")

    attached = {b.id for b in await repo.get_training_bosses(training_id)}
    if boss_id not in attached:
        raise InvalidReference(f"Boss {boss_id} is not attached to training {training_id}")
    if await repo.count_boss_preferences(training_id, boss_id) > 0:
        raise InUse(f"Boss {boss_id} is preferred by signups of training {training_id}")

    await repo.detach_boss(training_id, boss_id)
    logger.info("boss_detached training=%s boss=%s", training_id, boss_id)
    return await repo.get_training_bosses(training_id)


async def training_bosses(repo: Repository, training_id: int) -> list[BossRow]:
    await load_training(repo, training_id)
    return await repo.get_training_bosses(training_id)


async def validate_boss_subset(repo: Repository, training_id: int, boss_ids: set[int]) -> None:
    attached = {b.id for b in await repo.get_training_bosses(training_id)}
    unknown = set(boss_ids) - attached
    if unknown:
        raise InvalidReference(
            f"Bosses {sorted(unknown)} are not attached to training {training_id}"
        )


async def set_preferences(repo: Repository, signup_id: int, boss_ids: set[int]) -> set[int]:
    """Replace a signup's preferred bosses. An empty set means "all bosses"."""
    signup = await repo.get_signup_by_id(signup_id)
    if signup is None:
        raise NotFound(f"Signup {signup_id} not found")
    training = await load_training(repo, signup.training_id)
    if training_state(training) != TrainingState.PUBLISHED:
        raise IllegalState(
            f"Boss preferences of training {training.id} are locked ({training.state})"
        )
    await validate_boss_subset(repo, training.id, boss_ids)
    await repo.set_signup_preferences(signup_id, set(boss_ids))
    logger.info("boss_preferences_set signup=%s bosses=%s", signup_id, sorted(boss_ids))
    return set(boss_ids)
