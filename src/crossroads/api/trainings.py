"""Training API endpoints: lifecycle, slots, bosses, signups, assignment."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from crossroads.api.deps import ServiceDep, http_error
from crossroads.core.errors import CrossroadsError
from crossroads.core.lifecycle import TrainingState
from crossroads.db.models import BossRow, TrainingRow

router = APIRouter(prefix="/api/trainings", tags=["trainings"])


class CreateTrainingRequest(BaseModel):
    title: str = Field(min_length=1)
    date: datetime
    tier_id: int | None = None


class AdvanceRequest(BaseModel):
    to_state: TrainingState


class TierRequest(BaseModel):
    tier_id: int | None = None


class SlotRequest(BaseModel):
    role_id: int
    count: int = Field(default=1, ge=1)


class AttachBossRequest(BaseModel):
    boss_id: int


class SignupRequest(BaseModel):
    """Request body for signing up (or updating a signup)."""

    participant_external_id: int
    role_ids: list[int]
    boss_ids: list[int] | None = None
    comment: str | None = None


class CommentRequest(BaseModel):
    comment: str | None = None


class PreferencesRequest(BaseModel):
    boss_ids: list[int] = Field(default_factory=list)


def training_payload(training: TrainingRow) -> dict:
    return {
        "id": training.id,
        "title": training.title,
        "date": training.date.isoformat(),
        "state": training.state,
        "tier_id": training.tier_id,
        "state_changed_at": training.state_changed_at.isoformat(),
    }


def boss_payload(boss: BossRow) -> dict:
    return {
        "id": boss.id,
        "repr": boss.repr,
        "name": boss.name,
        "wing": boss.wing,
        "position": boss.position,
        "emoji": boss.emoji,
        "url": boss.url,
    }


def _slots_payload(counts: dict[int, int]) -> list[dict]:
    return [{"role_id": role_id, "count": count} for role_id, count in sorted(counts.items())]


# --- Collection routes (declared before /{training_id}) ---


@router.post("", status_code=201)
async def create_training(body: CreateTrainingRequest, service: ServiceDep) -> dict:
    try:
        training = await service.create_training(body.title, body.date, body.tier_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": training_payload(training)}


@router.get("")
async def list_trainings(service: ServiceDep, state: TrainingState | None = None) -> dict:
    """List trainings by date, optionally only those in one state."""
    trainings = await service.list_trainings(state)
    return {"data": [training_payload(t) for t in trainings]}


@router.get("/counts")
async def count_trainings(service: ServiceDep) -> dict:
    counts = await service.count_by_state()
    return {"data": {state.value: count for state, count in counts.items()}}


@router.get("/export/signups.csv", response_class=PlainTextResponse)
async def export_signups(
    service: ServiceDep,
    training_id: Annotated[list[int], Query()],
) -> PlainTextResponse:
    """Signups of several trainings as one CSV. Skipped signups go in a header."""
    try:
        body, log = await service.export_signups_csv(training_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return PlainTextResponse(
        body,
        media_type="text/csv",
        headers={"X-Export-Skipped": str(len(log))},
    )


# --- Single training ---


@router.get("/{training_id}")
async def get_training(training_id: int, service: ServiceDep) -> dict:
    try:
        training = await service.get_training(training_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": training_payload(training)}


@router.get("/{training_id}/history")
async def get_history(training_id: int, service: ServiceDep) -> dict:
    try:
        changes = await service.state_history(training_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {
        "data": [
            {
                "from_state": c.from_state,
                "to_state": c.to_state,
                "changed_at": c.changed_at.isoformat(),
            }
            for c in changes
        ]
    }


@router.post("/{training_id}/advance")
async def advance_training(training_id: int, body: AdvanceRequest, service: ServiceDep) -> dict:
    """Move the training to the next lifecycle state."""
    try:
        change = await service.advance(training_id, body.to_state)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {
        "data": {
            "training_id": training_id,
            "from_state": change.from_state,
            "to_state": change.to_state,
        }
    }


@router.put("/{training_id}/tier")
async def set_tier(training_id: int, body: TierRequest, service: ServiceDep) -> dict:
    try:
        training = await service.set_training_tier(training_id, body.tier_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": training_payload(training)}


@router.delete("/{training_id}", status_code=204)
async def delete_training(training_id: int, service: ServiceDep) -> None:
    try:
        await service.delete_training(training_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc


# --- Required slots ---


@router.get("/{training_id}/slots")
async def get_slots(training_id: int, service: ServiceDep) -> dict:
    try:
        counts = await service.required_slots(training_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": _slots_payload(counts)}


@router.post("/{training_id}/slots")
async def add_slots(training_id: int, body: SlotRequest, service: ServiceDep) -> dict:
    try:
        counts = await service.add_required_slot(training_id, body.role_id, body.count)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": _slots_payload(counts)}


@router.delete("/{training_id}/slots/{role_id}")
async def remove_slots(
    training_id: int,
    role_id: int,
    service: ServiceDep,
    count: Annotated[int, Query(ge=1)] = 1,
) -> dict:
    try:
        counts = await service.remove_required_slot(training_id, role_id, count)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": _slots_payload(counts)}


# --- Bosses ---


@router.get("/{training_id}/bosses")
async def get_bosses(training_id: int, service: ServiceDep) -> dict:
    try:
        bosses = await service.training_bosses(training_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": [boss_payload(b) for b in bosses]}


@router.post("/{training_id}/bosses")
async def attach_boss(training_id: int, body: AttachBossRequest, service: ServiceDep) -> dict:
    try:
        bosses = await service.attach_boss(training_id, body.boss_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": [boss_payload(b) for b in bosses]}


@router.delete("/{training_id}/bosses/{boss_id}")
async def detach_boss(training_id: int, boss_id: int, service: ServiceDep) -> dict:
    try:
        bosses = await service.detach_boss(training_id, boss_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": [boss_payload(b) for b in bosses]}


# --- Signups ---


@router.get("/{training_id}/signups")
async def get_signups(training_id: int, service: ServiceDep) -> dict:
    try:
        signups = await service.list_signups(training_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": [s.model_dump(mode="json") for s in signups]}


@router.post("/{training_id}/signups")
async def sign_up(training_id: int, body: SignupRequest, service: ServiceDep) -> dict:
    """Sign a participant up. Signing up again replaces the accepted roles."""
    try:
        signup = await service.register(
            training_id,
            body.participant_external_id,
            set(body.role_ids),
            boss_preferences=set(body.boss_ids) if body.boss_ids is not None else None,
            comment=body.comment,
        )
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": {"signup_id": signup.id, "training_id": training_id}}


@router.delete("/{training_id}/signups/{external_id}", status_code=204)
async def withdraw(training_id: int, external_id: int, service: ServiceDep) -> None:
    try:
        await service.withdraw(training_id, external_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc


@router.put("/{training_id}/signups/{external_id}/comment")
async def set_comment(
    training_id: int,
    external_id: int,
    body: CommentRequest,
    service: ServiceDep,
) -> dict:
    try:
        signup = await service.set_comment(training_id, external_id, body.comment)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": {"signup_id": signup.id, "comment": signup.comment}}


@router.put("/{training_id}/signups/{external_id}/bosses")
async def set_preferences(
    training_id: int,
    external_id: int,
    body: PreferencesRequest,
    service: ServiceDep,
) -> dict:
    try:
        boss_ids = await service.set_preferences(training_id, external_id, set(body.boss_ids))
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": {"boss_ids": sorted(boss_ids)}}


# --- Assignment ---


@router.post("/{training_id}/resolve")
async def resolve(training_id: int, service: ServiceDep) -> dict:
    """Run the resolver on a closed training and return the preview."""
    try:
        assignment = await service.resolve(training_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": assignment.model_dump(mode="json")}


@router.get("/{training_id}/assignment")
async def get_assignment(training_id: int, service: ServiceDep) -> dict:
    try:
        assignment = await service.get_assignment(training_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": assignment.model_dump(mode="json")}


@router.get("/{training_id}/assignment.csv", response_class=PlainTextResponse)
async def export_assignment(training_id: int, service: ServiceDep) -> PlainTextResponse:
    try:
        body = await service.export_assignment_csv(training_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return PlainTextResponse(body, media_type="text/csv")
