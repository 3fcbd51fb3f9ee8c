"""Application settings via pydantic-settings. Loads from environment and .env file."""

from __future__ import annotations

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

# Closed range for role priority tiers. Lower is more critical.
MIN_ROLE_PRIORITY = 0
MAX_ROLE_PRIORITY = 4
DEFAULT_ROLE_PRIORITY = 2


class Settings(BaseSettings):
    """Crossroads application configuration.

    All values can be overridden via environment variables or .env file.
    """

    # Discord
    discord_bot_token: str = ""
    discord_guild_id: str = ""
    discord_enabled: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///crossroads.db"

    # Environment
    crossroads_env: str = "development"

    # Roles
    crossroads_default_role_priority: int = DEFAULT_ROLE_PRIORITY

    # Logging
    crossroads_log_level: str = "INFO"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @field_validator("crossroads_default_role_priority")
    @classmethod
    def _priority_in_range(cls, value: int) -> int:
        if not MIN_ROLE_PRIORITY <= value <= MAX_ROLE_PRIORITY:
            msg = (
                f"CROSSROADS_DEFAULT_ROLE_PRIORITY must lie in "
                f"{MIN_ROLE_PRIORITY}..{MAX_ROLE_PRIORITY}, got {value}"
            )
            raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def _require_guild_for_discord(self) -> Settings:
        """Membership lookups need a guild; refuse a half-configured bot in production."""
        if (
            self.crossroads_env == "production"
            and self.discord_enabled
            and not self.discord_guild_id
        ):
            raise ValueError("DISCORD_GUILD_ID must be set when Discord is enabled in production")
        return self


def is_discord_enabled(settings: Settings) -> bool:
    """Check whether the Discord membership oracle should be used.

    Requires the enabled flag, a bot token and a guild id. Without all three
    the app falls back to a static (empty) membership oracle.
    """
    return bool(
        settings.discord_enabled and settings.discord_bot_token and settings.discord_guild_id
    )
