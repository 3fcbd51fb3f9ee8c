"""FastAPI dependency injection for the training service and error mapping."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from crossroads.core.errors import (
    Conflict,
    CrossroadsError,
    EmptyInput,
    Forbidden,
    IllegalState,
    IllegalTransition,
    InvalidPriority,
    InvalidReference,
    NotFound,
)
from crossroads.core.service import TrainingService

# Checked in order; InUse is a Conflict and shares its status.
_STATUS_BY_ERROR: list[tuple[type[CrossroadsError], int]] = [
    (NotFound, 404),
    (Forbidden, 403),
    (IllegalState, 409),
    (IllegalTransition, 409),
    (Conflict, 409),
    (InvalidReference, 422),
    (InvalidPriority, 422),
    (EmptyInput, 422),
]


async def get_service(request: Request) -> TrainingService:
    """Get the training service from app state."""
    return request.app.state.service


ServiceDep = Annotated[TrainingService, Depends(get_service)]


def http_error(exc: CrossroadsError | ValueError) -> HTTPException:
    """Translate a core error into the HTTPException the endpoint raises."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
