"""Assignment resolver -- matching signups to required role slots.

A capacity-constrained bipartite matching solved greedily by role
priority, not a global maximum matching. The greedy pass is explainable
("you were benched because the two DPS slots went to earlier signups") and
fully deterministic, which matters more here than squeezing out one more
filled slot.

Algorithm:
  1. Walk roles by ascending (priority, role id).
  2. Pool the unassigned signups that accept the role.
  3. Order the pool by registration time, then by how few roles the
     signup accepts (fewer alternatives go first), then by signup id.
  4. Fill the role's openings from the front of the pool.
  5. Whoever is left unassigned at the end is benched.

``resolve_assignment`` is pure. ``run_resolver`` loads a snapshot, runs it,
and commits the result; it never writes a partial assignment.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crossroads.core.errors import EmptyInput, IllegalState, NotFound
from crossroads.core.lifecycle import TrainingState, load_training, training_state
from crossroads.core.signups import as_utc_naive
from crossroads.models.roster import (
    Assignment,
    BossRoster,
    RoleSlots,
    SignupEntry,
    SlotFill,
)

if TYPE_CHECKING:
    from crossroads.core.event_bus import EventBus
    from crossroads.db.repository import Repository

logger = logging.getLogger(__name__)


def _pool_key(entry: SignupEntry) -> tuple:
    return (entry.registered_at, len(entry.accepted_role_ids), entry.signup_id)


def resolve_assignment(
    training_id: int,
    slots: list[RoleSlots],
    signups: list[SignupEntry],
    boss_ids: list[int] | None = None,
) -> Assignment:
    """Compute the assignment for one training.

    Args:
        training_id: Training the result belongs to.
        slots: Open positions per role, with the role's priority.
        signups: Signups with their accepted roles and boss preferences.
        boss_ids: The training's bosses in schedule order. Each gets a
            roster of assigned signups whose preferences include it (an
            empty preference set means every boss).

    Returns:
        An Assignment listing every slot (filled or not), the benched
        signups in registration order, and per-boss rosters.

    Raises:
        EmptyInput: ``slots`` is empty.
    """
    if not slots:
        raise EmptyInput(f"Training {training_id} has no required slots")

    ordered_signups = sorted(signups, key=_pool_key)
    assigned: dict[int, int] = {}  # signup_id -> role_id
    fills: list[SlotFill] = []

    for role in sorted(slots, key=lambda r: (r.priority, r.role_id)):
        pool = [
            s
            for s in ordered_signups
            if s.signup_id not in assigned and role.role_id in s.accepted_role_ids
        ]
        for index in range(role.count):
            signup_id = pool[index].signup_id if index < len(pool) else None
            if signup_id is not None:
                assigned[signup_id] = role.role_id
            fills.append(SlotFill(role_id=role.role_id, slot_index=index, signup_id=signup_id))

    benched = [s.signup_id for s in ordered_signups if s.signup_id not in assigned]

    rosters: list[BossRoster] = []
    preferences = {s.signup_id: s.preferred_boss_ids for s in signups}
    for boss_id in boss_ids or []:
        roster = [
            f.signup_id
            for f in fills
            if f.signup_id is not None
            and (not preferences[f.signup_id] or boss_id in preferences[f.signup_id])
        ]
        rosters.append(BossRoster(boss_id=boss_id, signup_ids=roster))

    return Assignment(
        training_id=training_id,
        slots=fills,
        benched=benched,
        boss_rosters=rosters,
    )


async def load_snapshot(
    repo: Repository,
    training_id: int,
) -> tuple[list[RoleSlots], list[SignupEntry], list[int]]:
    """Read slots, signups and bosses for one training in a single session."""
    counts = await repo.get_slot_counts(training_id)
    roles = {r.id: r for r in await repo.get_roles(list(counts))}
    slots = [
        RoleSlots(role_id=role_id, priority=roles[role_id].priority, count=count)
        for role_id, count in counts.items()
    ]

    accepted = await repo.get_role_ids_by_signup(training_id)
    preferred = await repo.get_boss_ids_by_signup(training_id)
    signups = [
        SignupEntry(
            signup_id=s.id,
            participant_id=s.participant_id,
            registered_at=as_utc_naive(s.created_at),
            accepted_role_ids=frozenset(accepted.get(s.id, set())),
            preferred_boss_ids=frozenset(preferred.get(s.id, set())),
        )
        for s in await repo.get_signups_for_training(training_id)
    ]

    boss_ids = [b.id for b in await repo.get_training_bosses(training_id)]
    return slots, signups, boss_ids


async def compute_and_commit(
    repo: Repository,
    training_id: int,
    *,
    frozen: bool = False,
    event_bus: EventBus | None = None,
) -> Assignment:
    """Resolve from a fresh snapshot and store the result as the committed assignment."""
    slots, signups, boss_ids = await load_snapshot(repo, training_id)
    assignment = resolve_assignment(training_id, slots, signups, boss_ids)
    await repo.save_assignment(training_id, assignment.model_dump(mode="json"), frozen=frozen)

    logger.info(
        "assignment_resolved training=%s filled=%d unfilled=%d benched=%d frozen=%s",
        training_id,
        len(assignment.assigned),
        len(assignment.unfilled),
        len(assignment.benched),
        frozen,
    )

    if event_bus:
        await event_bus.publish(
            "training.assignment_resolved",
            {
                "training_id": training_id,
                "frozen": frozen,
                "assignment": assignment.model_dump(mode="json"),
            },
        )
    return assignment


async def run_resolver(
    repo: Repository,
    training_id: int,
    event_bus: EventBus | None = None,
) -> Assignment:
    """Resolve (or re-preview) the assignment of a closed training.

    Raises:
        NotFound: unknown training.
        IllegalState: the training is not closed (too early, or already frozen).
        EmptyInput: the training has no required slots.
    """
    training = await load_training(repo, training_id)
    current = training_state(training)
    if current != TrainingState.CLOSED:
        raise IllegalState(
            f"Assignment of training {training_id} can only be resolved while closed "
            f"(it is {current.value})"
        )
    return await compute_and_commit(repo, training_id, event_bus=event_bus)


async def freeze_assignment(
    repo: Repository,
    training_id: int,
    event_bus: EventBus | None = None,
) -> Assignment | None:
    """Final resolver run as the training starts. Skipped when there are no slots."""
    if not await repo.get_slot_counts(training_id):
        logger.warning("assignment_freeze_skipped training=%s reason=no_slots", training_id)
        await repo.delete_assignment(training_id)
        return None
    return await compute_and_commit(repo, training_id, frozen=True, event_bus=event_bus)


async def get_assignment(repo: Repository, training_id: int) -> Assignment:
    """The committed assignment of a training."""
    await load_training(repo, training_id)
    row = await repo.get_assignment(training_id)
    if row is None:
        raise NotFound(f"Training {training_id} has no resolved assignment")
    return Assignment.model_validate(row.payload)
