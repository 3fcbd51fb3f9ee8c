"""Boss catalog API endpoints."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from crossroads.api.deps import ServiceDep, http_error
from crossroads.api.trainings import boss_payload
from crossroads.core.errors import CrossroadsError

router = APIRouter(prefix="/api/bosses", tags=["bosses"])


class CreateBossRequest(BaseModel):
    repr: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1)
    wing: int
    position: int
    emoji: int | None = None
    url: str | None = None


@router.post("", status_code=201)
async def create_boss(body: CreateBossRequest, service: ServiceDep) -> dict:
    try:
        boss = await service.create_boss(
            body.repr,
            body.name,
            body.wing,
            body.position,
            emoji=body.emoji,
            url=body.url,
        )
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": boss_payload(boss)}


@router.get("")
async def list_bosses(service: ServiceDep) -> dict:
    bosses = await service.list_bosses()
    return {"data": [boss_payload(b) for b in bosses]}
