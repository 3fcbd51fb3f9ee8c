"""Training lifecycle -- creation, state transitions, deletion.

Training lifecycle states:
    CREATED -> PUBLISHED -> CLOSED -> STARTED -> FINISHED

Transitions are single-step and forward only. Each state gates what may
happen to the training:

    created    slots/bosses editable, no signups
    published  signups accepted, slots/bosses still editable
    closed     no signups or edits, resolver may run
    started    assignment frozen, read-only
    finished   archived, immutable
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from crossroads.core.errors import IllegalState, IllegalTransition, NotFound

if TYPE_CHECKING:
    from crossroads.core.event_bus import EventBus
    from crossroads.db.models import TrainingRow, TrainingStateChangeRow
    from crossroads.db.repository import Repository

logger = logging.getLogger(__name__)


class TrainingState(StrEnum):
    """All lifecycle states, in order.

    The str mixin allows direct comparison with the raw status strings
    stored in the database (``training.state == TrainingState.CLOSED``).
    """

    CREATED = "created"
    PUBLISHED = "published"
    CLOSED = "closed"
    STARTED = "started"
    FINISHED = "finished"


# Key = current state, value = the only legal next state (None when terminal).
NEXT_STATE: dict[TrainingState, TrainingState | None] = {
    TrainingState.CREATED: TrainingState.PUBLISHED,
    TrainingState.PUBLISHED: TrainingState.CLOSED,
    TrainingState.CLOSED: TrainingState.STARTED,
    TrainingState.STARTED: TrainingState.FINISHED,
    TrainingState.FINISHED: None,
}

EDITABLE_STATES: frozenset[TrainingState] = frozenset(
    {TrainingState.CREATED, TrainingState.PUBLISHED}
)

# Trainings that may still be deleted outright. Once started, the frozen
# assignment is history.
DELETABLE_STATES: frozenset[TrainingState] = frozenset(
    {TrainingState.CREATED, TrainingState.PUBLISHED, TrainingState.CLOSED}
)


def training_state(training: TrainingRow) -> TrainingState:
    return TrainingState(training.state)


async def load_training(repo: Repository, training_id: int) -> TrainingRow:
    """Fetch a training or raise NotFound."""
    training = await repo.get_training(training_id)
    if training is None:
        raise NotFound(f"Training {training_id} not found")
    return training


def require_state(
    training: TrainingRow,
    allowed: frozenset[TrainingState] | set[TrainingState],
    action: str,
) -> TrainingState:
    """Raise IllegalState unless the training is in one of ``allowed``."""
    current = training_state(training)
    if current not in allowed:
        msg = (
            f"Cannot {action} training {training.id} while it is {current.value}. "
            f"Allowed in: {sorted(s.value for s in allowed)}"
        )
        raise IllegalState(msg)
    return current


async def create_training(
    repo: Repository,
    title: str,
    date: datetime,
    tier_id: int | None = None,
) -> TrainingRow:
    if tier_id is not None and await repo.get_tier(tier_id) is None:
        raise NotFound(f"Tier {tier_id} not found")
    training = await repo.create_training(title, date, tier_id=tier_id)
    logger.info("training_created training=%s title=%r date=%s", training.id, title, date)
    return training


async def advance_training(
    repo: Repository,
    training_id: int,
    to_state: TrainingState,
    event_bus: EventBus | None = None,
) -> TrainingStateChangeRow:
    """Validate and execute a single-step lifecycle transition.

    Side effects beyond the state change itself (freezing the assignment on
    start) belong to the caller, which runs them in the same transaction.

    Raises:
        NotFound: the training does not exist.
        IllegalTransition: ``to_state`` is not the immediate successor.
    """
    training = await load_training(repo, training_id)
    current = training_state(training)
    expected = NEXT_STATE[current]

    if to_state != expected:
        allowed = expected.value if expected is not None else "none (terminal)"
        msg = (
            f"Invalid training transition: {current.value} -> {to_state.value}. "
            f"Allowed: {allowed}"
        )
        raise IllegalTransition(msg)

    change = await repo.update_training_state(training, to_state.value)

    logger.info(
        "training_state_changed training=%s from=%s to=%s",
        training_id,
        current.value,
        to_state.value,
    )

    if event_bus:
        await event_bus.publish(
            "training.state_changed",
            {
                "training_id": training_id,
                "from_state": current.value,
                "to_state": to_state.value,
                "changed_at": change.changed_at.isoformat(),
            },
        )

    return change


async def set_training_tier(
    repo: Repository,
    training_id: int,
    tier_id: int | None,
) -> TrainingRow:
    training = await load_training(repo, training_id)
    require_state(training, EDITABLE_STATES, "change the tier of")
    if tier_id is not None and await repo.get_tier(tier_id) is None:
        raise NotFound(f"Tier {tier_id} not found")
    await repo.set_training_tier(training, tier_id)
    logger.info("training_tier_set training=%s tier=%s", training_id, tier_id)
    return training


async def delete_training(repo: Repository, training_id: int) -> None:
    """Delete a training with its slots, bosses, signups and assignment."""
    training = await load_training(repo, training_id)
    require_state(training, DELETABLE_STATES, "delete")
    await repo.delete_training(training_id)
    logger.info("training_deleted training=%s", training_id)


async def count_by_state(repo: Repository) -> dict[TrainingState, int]:
    """Number of trainings per state. Every state is present, zero-filled."""
    raw = await repo.count_trainings_by_state()
    return {state: raw.get(state.value, 0) for state in TrainingState}
