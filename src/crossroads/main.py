"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from crossroads.api.bosses import router as bosses_router
from crossroads.api.participants import router as participants_router
from crossroads.api.roles import router as roles_router
from crossroads.api.tiers import router as tiers_router
from crossroads.api.trainings import router as trainings_router
from crossroads.config import Settings, is_discord_enabled
from crossroads.core.event_bus import EventBus
from crossroads.core.locks import TrainingLocks
from crossroads.core.service import TrainingService
from crossroads.core.tiers import MembershipOracle, StaticMembershipOracle
from crossroads.db.engine import create_engine, create_tables

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: create engine/tables, the service, and optionally the Discord client."""
    settings: Settings = app.state.settings
    engine = create_engine(settings.database_url)
    await create_tables(engine)
    app.state.engine = engine
    app.state.event_bus = EventBus()

    membership_client = None
    oracle: MembershipOracle
    if is_discord_enabled(settings):
        from crossroads.discord.membership import (
            DiscordMembershipOracle,
            start_membership_client,
        )

        membership_client = await start_membership_client(settings)
        oracle = DiscordMembershipOracle(membership_client, int(settings.discord_guild_id))
        logger.info("discord_membership_integration_started")
    else:
        oracle = StaticMembershipOracle()
        logger.info("discord_membership_integration_disabled")

    app.state.service = TrainingService(
        engine,
        event_bus=app.state.event_bus,
        oracle=oracle,
        locks=TrainingLocks(),
        default_role_priority=settings.crossroads_default_role_priority,
    )

    yield

    if membership_client is not None:
        await membership_client.close()
        logger.info("discord_membership_integration_stopped")

    await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the Crossroads FastAPI application."""
    settings = settings or Settings()

    logging.basicConfig(
        level=getattr(logging, settings.crossroads_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Crossroads",
        version="0.1.0",
        description="Training signups, tier gating and role assignment for raid trainings",
        docs_url="/docs" if settings.crossroads_env != "production" else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.include_router(trainings_router)
    app.include_router(roles_router)
    app.include_router(tiers_router)
    app.include_router(bosses_router)
    app.include_router(participants_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "env": settings.crossroads_env}

    return app


app = create_app()
