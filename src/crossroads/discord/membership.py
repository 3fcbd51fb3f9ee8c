"""Guild role membership lookups through discord.py.

A participant's external id is their Discord user id; their external
groups are the ids of the guild roles they hold.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import discord

if TYPE_CHECKING:
    from crossroads.config import Settings

logger = logging.getLogger(__name__)


class DiscordMembershipOracle:
    """MembershipOracle backed by a connected discord.Client.

    Members are read from the client cache first and fetched from the API
    on a miss. Unknown members hold no groups.
    """

    def __init__(self, client: discord.Client, guild_id: int) -> None:
        self.client = client
        self.guild_id = guild_id

    async def external_group_ids_for(self, participant_external_id: int) -> set[int]:
        guild = self.client.get_guild(self.guild_id)
        if guild is None:
            logger.warning("discord_guild_unavailable guild_id=%s", self.guild_id)
            return set()

        member = guild.get_member(participant_external_id)
        if member is None:
            try:
                member = await guild.fetch_member(participant_external_id)
            except discord.NotFound:
                logger.info(
                    "discord_member_unknown guild_id=%s user=%s",
                    self.guild_id,
                    participant_external_id,
                )
                return set()

        # The @everyone role shares the guild id and never maps to a tier.
        return {role.id for role in member.roles if not role.is_default()}


class MembershipClient(discord.Client):
    """Minimal gateway client: only the members intent is needed."""

    def __init__(self) -> None:
        intents = discord.Intents.none()
        intents.guilds = True
        intents.members = True
        super().__init__(intents=intents)

    async def on_ready(self) -> None:
        logger.info("discord_membership_ready user=%s guilds=%d", self.user, len(self.guilds))


async def start_membership_client(settings: Settings) -> MembershipClient:
    """Create the client and connect it in the background.

    Returns immediately; the caller closes the client during shutdown.
    """
    client = MembershipClient()

    async def _run_client() -> None:
        try:
            await client.start(settings.discord_bot_token)
        except asyncio.CancelledError:
            logger.info("discord_membership_cancelled")
        except Exception:  # Last-resort handler; start() raises connection and auth errors
            logger.exception("discord_membership_error")
        finally:
            if not client.is_closed():
                await client.close()

    asyncio.create_task(_run_client(), name="discord-membership")
    logger.info("discord_membership_started guild_id=%s", settings.discord_guild_id)
    return client
