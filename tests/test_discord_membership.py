"""Tests for the Discord membership oracle.

All Discord objects are mocked; no real Discord connection required.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import discord
import pytest

from crossroads.config import Settings
from crossroads.discord.membership import (
    DiscordMembershipOracle,
    MembershipClient,
    start_membership_client,
)

GUILD_ID = 987654321


def make_role(role_id: int, default: bool = False) -> MagicMock:
    role = MagicMock(spec=discord.Role)
    role.id = role_id
    role.is_default.return_value = default
    return role


def make_member(*role_ids: int) -> MagicMock:
    member = MagicMock(spec=discord.Member)
    member.roles = [make_role(GUILD_ID, default=True), *(make_role(r) for r in role_ids)]
    return member


def make_client(guild: MagicMock | None) -> MagicMock:
    client = MagicMock(spec=discord.Client)
    client.get_guild = MagicMock(return_value=guild)
    return client


@pytest.fixture
def guild() -> MagicMock:
    guild = MagicMock(spec=discord.Guild)
    guild.get_member = MagicMock(return_value=None)
    guild.fetch_member = AsyncMock()
    return guild


class TestDiscordMembershipOracle:
    async def test_cached_member(self, guild: MagicMock):
        guild.get_member.return_value = make_member(10, 20)
        oracle = DiscordMembershipOracle(make_client(guild), GUILD_ID)

        assert await oracle.external_group_ids_for(42) == {10, 20}
        guild.get_member.assert_called_once_with(42)
        guild.fetch_member.assert_not_called()

    async def test_fetches_on_cache_miss(self, guild: MagicMock):
        guild.fetch_member.return_value = make_member(30)
        oracle = DiscordMembershipOracle(make_client(guild), GUILD_ID)

        assert await oracle.external_group_ids_for(42) == {30}
        guild.fetch_member.assert_awaited_once_with(42)

    async def test_unknown_member_has_no_groups(self, guild: MagicMock):
        response = MagicMock(status=404, reason="Not Found")
        guild.fetch_member.side_effect = discord.NotFound(response, "Unknown Member")
        oracle = DiscordMembershipOracle(make_client(guild), GUILD_ID)

        assert await oracle.external_group_ids_for(42) == set()

    async def test_guild_unavailable(self):
        oracle = DiscordMembershipOracle(make_client(None), GUILD_ID)
        assert await oracle.external_group_ids_for(42) == set()


class TestStartMembershipClient:
    async def test_start_creates_task(self):
        settings = Settings(
            discord_enabled=True,
            discord_bot_token="test-token-not-real",
            discord_guild_id=str(GUILD_ID),
        )
        with patch.object(MembershipClient, "start", new_callable=AsyncMock) as mock_start:
            client = await start_membership_client(settings)
            assert isinstance(client, MembershipClient)
            await asyncio.sleep(0.05)
            mock_start.assert_called_once_with("test-token-not-real")
            await client.close()
