"""Tests for Discord client module."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from botframe.discord.client import DiscordBotClient, incoming_from_discord
from botframe.transport import Author


def _discord_message(*, guild_id: int | None = 5, bot: bool = False) -> MagicMock:
    message = MagicMock()
    message.content = "!ping"
    message.id = 100
    message.channel.id = 200
    message.author.id = 300
    message.author.bot = bot
    message.author.__str__.return_value = "alice"
    if guild_id is None:
        message.guild = None
    else:
        message.guild.id = guild_id
    return message


class TestIncomingFromDiscord:
    def test_converts_guild_message(self) -> None:
        raw = _discord_message()

        incoming = incoming_from_discord(raw)

        assert incoming.content == "!ping"
        assert incoming.author == Author(id=300, bot=False, name="alice")
        assert incoming.channel_id == 200
        assert incoming.message_id == 100
        assert incoming.guild_id == 5
        assert incoming.member_id == 300
        assert incoming.raw is raw

    def test_direct_message_has_no_guild(self) -> None:
        incoming = incoming_from_discord(_discord_message(guild_id=None, bot=True))

        assert incoming.guild_id is None
        assert incoming.member_id is None
        assert incoming.author.bot is True


class TestDiscordBotClient:
    def test_creates_client_with_guild_id(self) -> None:
        client = DiscordBotClient("test-token", guild_id=123456)
        assert client._token == "test-token"
        assert client._guild_id == 123456
        assert client.user is None

    def test_set_message_handler(self) -> None:
        client = DiscordBotClient("test-token")

        async def handler(message: Any) -> None:
            pass

        client.set_message_handler(handler)
        assert client._message_handler is handler

    @pytest.mark.anyio
    async def test_close_without_bot_does_nothing(self) -> None:
        client = DiscordBotClient("test-token")
        await client.close()
        assert client._bot is None

    @pytest.mark.anyio
    async def test_send_before_start_is_dropped(self) -> None:
        client = DiscordBotClient("test-token")
        await client.send(channel_id=1, text="hello")
        assert client._bot is None

    @pytest.mark.anyio
    async def test_send_skips_missing_channel(self) -> None:
        client = DiscordBotClient("test-token")
        mock_bot = MagicMock()
        mock_bot.get_channel = MagicMock(return_value=None)
        mock_bot.fetch_channel = AsyncMock(
            side_effect=discord.NotFound(MagicMock(), "")
        )
        client._bot = mock_bot

        await client.send(channel_id=999, text="hello")

        mock_bot.fetch_channel.assert_awaited_once_with(999)

    @pytest.mark.anyio
    async def test_send_uses_messageable_channel(self) -> None:
        client = DiscordBotClient("test-token")
        channel = MagicMock(spec=discord.TextChannel)
        channel.send = AsyncMock()
        mock_bot = MagicMock()
        mock_bot.get_channel = MagicMock(return_value=channel)
        client._bot = mock_bot

        await client.send(channel_id=1, text="Usage:  `ping`")

        channel.send.assert_awaited_once_with(content="Usage:  `ping`")

    def test_add_listener_forwards_to_bot(self) -> None:
        client = DiscordBotClient("test-token")
        mock_bot = MagicMock()
        client._bot = mock_bot

        async def on_member_join(member: Any) -> None:
            pass

        client.add_listener(on_member_join, "on_member_join")

        mock_bot.add_listener.assert_called_once_with(on_member_join, "on_member_join")

    @pytest.mark.anyio
    async def test_start_raises_when_login_fails(self) -> None:
        client = DiscordBotClient("bad-token")
        mock_bot = MagicMock()
        mock_bot.start = AsyncMock(side_effect=discord.LoginFailure("bad token"))
        client._bot = mock_bot
        client._ready_event = asyncio.Event()

        with pytest.raises(discord.LoginFailure, match="bad token"):
            await client.start()

        mock_bot.start.assert_awaited_once_with("bad-token")

    @pytest.mark.anyio
    async def test_start_returns_once_ready(self) -> None:
        client = DiscordBotClient("test-token")
        ready = asyncio.Event()

        async def fake_start(token: str) -> None:
            ready.set()
            await asyncio.sleep(3600)

        mock_bot = MagicMock()
        mock_bot.start = fake_start
        mock_bot.close = AsyncMock()
        client._bot = mock_bot
        client._ready_event = ready

        await client.start()
        await client.close()

        mock_bot.close.assert_awaited_once()
        assert client._start_task is not None and client._start_task.done()
