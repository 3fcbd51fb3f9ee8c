"""Tier administration API endpoints."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from crossroads.api.deps import ServiceDep, http_error
from crossroads.core.errors import CrossroadsError

router = APIRouter(prefix="/api/tiers", tags=["tiers"])


class CreateTierRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    rank: int = Field(default=1, ge=1)


class MappingRequest(BaseModel):
    external_group_id: int


@router.post("", status_code=201)
async def create_tier(body: CreateTierRequest, service: ServiceDep) -> dict:
    try:
        tier = await service.create_tier(body.name, body.rank)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": {"id": tier.id, "name": tier.name, "rank": tier.rank, "group_ids": []}}


@router.get("")
async def list_tiers(service: ServiceDep) -> dict:
    tiers = await service.list_tiers()
    return {
        "data": [
            {"id": tier.id, "name": tier.name, "rank": tier.rank, "group_ids": group_ids}
            for tier, group_ids in tiers
        ]
    }


@router.delete("/{name}", status_code=204)
async def delete_tier(name: str, service: ServiceDep) -> None:
    try:
        await service.delete_tier(name)
    except CrossroadsError as exc:
        raise http_error(exc) from exc


@router.post("/{name}/mappings", status_code=201)
async def add_mapping(name: str, body: MappingRequest, service: ServiceDep) -> dict:
    """Link an external group (a Discord role id) to the tier."""
    try:
        await service.add_tier_mapping(name, body.external_group_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": {"tier": name, "external_group_id": body.external_group_id}}


@router.delete("/{name}/mappings/{external_group_id}", status_code=204)
async def remove_mapping(name: str, external_group_id: int, service: ServiceDep) -> None:
    try:
        await service.remove_tier_mapping(name, external_group_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
