"""Signup registry -- participants, signups, accepted roles, comments.

A participant holds at most one signup per training. Registering again
replaces the accepted-role set (and preferences, when given) but keeps the
original registration time, so re-registering does not cost a place in
the resolver's queue.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from crossroads.core.bosses import validate_boss_subset
from crossroads.core.errors import Forbidden, InvalidReference, NotFound
from crossroads.core.lifecycle import (
    TrainingState,
    load_training,
    require_state,
)
from crossroads.core.tiers import check_admission, required_tier, resolve_tier
from crossroads.models.roster import SignupView

if TYPE_CHECKING:
    from crossroads.db.models import ParticipantRow, SignupRow, TrainingRow
    from crossroads.db.repository import Repository

logger = logging.getLogger(__name__)

_PUBLISHED = frozenset({TrainingState.PUBLISHED})
_WITHDRAWABLE = frozenset({TrainingState.PUBLISHED, TrainingState.CLOSED})


def as_utc_naive(value: datetime) -> datetime:
    """Timestamps come back naive from SQLite; normalize fresh ones to match."""
    if value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


async def register_participant(
    repo: Repository,
    external_id: int,
    account_name: str,
) -> ParticipantRow:
    account_name = account_name.strip()
    if not account_name:
        raise ValueError("account_name must not be empty")
    participant = await repo.upsert_participant(external_id, account_name)
    logger.info("participant_registered participant=%s external=%s", participant.id, external_id)
    return participant


async def load_participant(repo: Repository, external_id: int) -> ParticipantRow:
    participant = await repo.get_participant_by_external_id(external_id)
    if participant is None:
        raise NotFound(f"Participant {external_id} is not registered")
    return participant


async def register(
    repo: Repository,
    training_id: int,
    participant_external_id: int,
    accepted_role_ids: set[int],
    *,
    external_group_ids: set[int],
    boss_preferences: set[int] | None = None,
    comment: str | None = None,
) -> SignupRow:
    """Sign a participant up for a training, or update their existing signup.

    Raises:
        NotFound: unknown training or participant.
        IllegalState: the training is not published.
        Forbidden: the participant's tier does not meet the requirement.
        InvalidReference: empty role set, a role without a slot in this
            training, or a preferred boss not attached to it.
    """
    training = await load_training(repo, training_id)
    participant = await load_participant(repo, participant_external_id)
    require_state(training, _PUBLISHED, "sign up for")

    required = await required_tier(repo, training.tier_id)
    resolved = await resolve_tier(repo, external_group_ids)
    if not check_admission(required, resolved):
        logger.info(
            "signup_rejected_tier training=%s participant=%s required=%s resolved=%s",
            training_id,
            participant.id,
            required.name if required else None,
            resolved.name,
        )
        raise Forbidden(
            f"Tier requirement not fulfilled: {required.name if required else ''} "
            f"(you have {resolved.name})"
        )

    accepted = set(accepted_role_ids)
    if not accepted:
        raise InvalidReference("At least one role must be selected")
    slot_roles = set(await repo.get_slot_counts(training_id))
    unknown = accepted - slot_roles
    if unknown:
        raise InvalidReference(
            f"Roles {sorted(unknown)} are not required by training {training_id}"
        )
    if boss_preferences is not None:
        await validate_boss_subset(repo, training_id, boss_preferences)

    signup = await repo.get_signup(training_id, participant.id)
    created = signup is None
    if signup is None:
        signup = await repo.create_signup(training_id, participant.id, comment=comment)
    elif comment is not None:
        signup.comment = comment

    await repo.set_signup_roles(signup.id, accepted)
    if boss_preferences is not None:
        await repo.set_signup_preferences(signup.id, set(boss_preferences))

    logger.info(
        "signup_%s training=%s participant=%s roles=%s",
        "created" if created else "updated",
        training_id,
        participant.id,
        sorted(accepted),
    )
    return signup


async def withdraw(repo: Repository, training_id: int, participant_external_id: int) -> None:
    """Remove a participant's signup with its acceptances and preferences.

    Allowed while published or closed. In closed the previewed assignment
    no longer matches the signups, so it is discarded.
    """
    training = await load_training(repo, training_id)
    participant = await load_participant(repo, participant_external_id)
    current = require_state(training, _WITHDRAWABLE, "withdraw from")

    signup = await repo.get_signup(training_id, participant.id)
    if signup is None:
        raise NotFound(f"Participant {participant_external_id} is not signed up for {training_id}")

    await repo.delete_signup(signup)
    if current == TrainingState.CLOSED:
        await repo.delete_assignment(training_id)
    logger.info("signup_withdrawn training=%s participant=%s", training_id, participant.id)


async def set_comment(
    repo: Repository,
    training_id: int,
    participant_external_id: int,
    comment: str | None,
) -> SignupRow:
    training = await load_training(repo, training_id)
    participant = await load_participant(repo, participant_external_id)
    require_state(training, _PUBLISHED, "comment on")
    signup = await repo.get_signup(training_id, participant.id)
    if signup is None:
        raise NotFound(f"Participant {participant_external_id} is not signed up for {training_id}")
    signup.comment = comment or None
    await repo.session.flush()
    return signup


async def list_signups(repo: Repository, training_id: int) -> list[SignupView]:
    """Every signup of a training, in registration order."""
    await load_training(repo, training_id)
    signups = await repo.get_signups_for_training(training_id)
    roles = await repo.get_role_ids_by_signup(training_id)
    bosses = await repo.get_boss_ids_by_signup(training_id)
    participants = await repo.get_participants([s.participant_id for s in signups])

    views: list[SignupView] = []
    for s in signups:
        participant = participants[s.participant_id]
        views.append(
            SignupView(
                signup_id=s.id,
                training_id=training_id,
                participant_id=s.participant_id,
                external_id=participant.external_id,
                account_name=participant.account_name,
                registered_at=as_utc_naive(s.created_at),
                accepted_role_ids=sorted(roles.get(s.id, set())),
                preferred_boss_ids=sorted(bosses.get(s.id, set())),
                comment=s.comment,
            )
        )
    views.sort(key=lambda v: (v.registered_at, v.signup_id))
    return views


async def joinable_trainings(
    repo: Repository,
    participant_external_id: int,
    external_group_ids: set[int],
) -> list[TrainingRow]:
    """Published trainings this participant may sign up for, by date."""
    resolved = await resolve_tier(repo, external_group_ids)
    joinable: list[TrainingRow] = []
    for training in await repo.list_trainings(TrainingState.PUBLISHED.value):
        if check_admission(await required_tier(repo, training.tier_id), resolved):
            joinable.append(training)
    logger.debug(
        "joinable_trainings participant=%s tier=%s count=%d",
        participant_external_id,
        resolved.name,
        len(joinable),
    )
    return joinable
