"""Role catalog API endpoints."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from crossroads.api.deps import ServiceDep, http_error
from crossroads.core.errors import CrossroadsError
from crossroads.db.models import RoleRow

router = APIRouter(prefix="/api/roles", tags=["roles"])


class CreateRoleRequest(BaseModel):
    title: str = Field(min_length=1)
    repr: str = Field(min_length=1, max_length=20)
    emoji: int
    priority: int | None = None


def role_payload(role: RoleRow) -> dict:
    return {
        "id": role.id,
        "title": role.title,
        "repr": role.repr,
        "emoji": role.emoji,
        "priority": role.priority,
        "active": role.active,
    }


@router.post("", status_code=201)
async def create_role(body: CreateRoleRequest, service: ServiceDep) -> dict:
    """Add a role. Priority 0 is filled first by the resolver, 4 last."""
    try:
        role = await service.create_role(body.title, body.repr, body.emoji, body.priority)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": role_payload(role)}


@router.get("")
async def list_roles(service: ServiceDep) -> dict:
    roles = await service.list_active_roles()
    return {"data": [role_payload(r) for r in roles]}


@router.get("/by-code/{repr}")
async def get_role(repr: str, service: ServiceDep) -> dict:
    try:
        role = await service.get_role_by_repr(repr)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": role_payload(role)}


@router.post("/{role_id}/deactivate")
async def deactivate_role(role_id: int, service: ServiceDep) -> dict:
    try:
        role = await service.deactivate_role(role_id)
    except CrossroadsError as exc:
        raise http_error(exc) from exc
    return {"data": role_payload(role)}
