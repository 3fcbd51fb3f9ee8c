"""Participant API endpoints: registration, tier, joinable trainings."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from crossroads.api.deps import ServiceDep, http_error
from crossroads.api.trainings import training_payload

router = APIRouter(prefix="/api/participants", tags=["participants"])


class RegisterRequest(BaseModel):
    external_id: int
    account_name: str = Field(min_length=1, max_length=100)


@router.post("", status_code=201)
async def register_participant(body: RegisterRequest, service: ServiceDep) -> dict:
    """Register a participant, or update the account name of a known one."""
    try:
        participant = await service.register_participant(body.external_id, body.account_name)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {
        "data": {
            "id": participant.id,
            "external_id": participant.external_id,
            "account_name": participant.account_name,
        }
    }


@router.get("/{external_id}/tier")
async def get_tier(external_id: int, service: ServiceDep) -> dict:
    tier = await service.tier_of(external_id)
    return {"data": tier.model_dump()}


@router.get("/{external_id}/joinable")
async def get_joinable(external_id: int, service: ServiceDep) -> dict:
    trainings = await service.joinable_trainings(external_id)
    return {"data": [training_payload(t) for t in trainings]}
