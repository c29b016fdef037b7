"""Discord API client wrapper."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any

import discord

from ..logging import get_logger
from ..transport import Author, IncomingMessage

MessageHandler = Callable[[IncomingMessage], Awaitable[Any]]

logger = get_logger(__name__)


def incoming_from_discord(message: discord.Message) -> IncomingMessage:
    in_guild = message.guild is not None
    return IncomingMessage(
        content=message.content or "",
        author=Author(
            id=message.author.id,
            bot=bool(message.author.bot),
            name=str(message.author),
        ),
        channel_id=message.channel.id,
        message_id=message.id,
        guild_id=message.guild.id if in_guild else None,
        member_id=message.author.id if in_guild else None,
        raw=message,
    )


class DiscordBotClient:
    """Wrapper around a Pycord bot that feeds messages to one handler."""

    def __init__(self, token: str, *, guild_id: int | None = None) -> None:
        self._token = token
        self._guild_id = guild_id
        self._message_handler: MessageHandler | None = None
        # Defer bot creation until inside async context
        self._bot: discord.Bot | None = None
        self._ready_event: asyncio.Event | None = None
        self._start_task: asyncio.Task[None] | None = None

    def _ensure_bot(self) -> discord.Bot:
        """Create the bot if not already created. Must be called from async context."""
        if self._bot is not None:
            return self._bot

        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True
        intents.messages = True
        intents.members = True

        debug_guilds = [self._guild_id] if self._guild_id else None
        self._bot = discord.Bot(intents=intents, debug_guilds=debug_guilds)
        self._ready_event = asyncio.Event()

        @self._bot.event
        async def on_ready() -> None:
            assert self._bot is not None
            assert self._ready_event is not None
            user = self._bot.user
            logger.info("client.ready", user=str(user))
            logger.debug("client.identity", user_id=user.id if user else None)
            logger.debug(
                "client.inventory",
                channels=sum(1 for _ in self._bot.get_all_channels()),
                guilds=len(self._bot.guilds),
                verbose=True,
            )
            self._ready_event.set()

        @self._bot.event
        async def on_message(message: discord.Message) -> None:
            assert self._bot is not None
            if message.author == self._bot.user:
                return
            if self._message_handler is not None:
                await self._message_handler(incoming_from_discord(message))

        return self._bot

    @property
    def bot(self) -> discord.Bot:
        """Get the underlying Pycord bot. Creates it if needed."""
        return self._ensure_bot()

    @property
    def user(self) -> discord.User | None:
        if self._bot is None:
            return None
        return self._bot.user

    def set_message_handler(self, handler: MessageHandler) -> None:
        self._message_handler = handler

    def add_listener(
        self, func: Callable[..., Awaitable[Any]], name: str | None = None
    ) -> None:
        """Subscribe ``func`` to a gateway event, e.g. ``on_member_join``."""
        self._ensure_bot().add_listener(func, name)

    async def start(self) -> None:
        """Start the bot and wait until ready."""
        bot = self._ensure_bot()
        assert self._ready_event is not None

        async def _run_bot() -> None:
            try:
                await bot.start(self._token)
            except asyncio.CancelledError:
                pass
            except RuntimeError as e:
                # Suppress "Session is closed" error during shutdown
                if "Session is closed" not in str(e):
                    raise

        self._start_task = asyncio.create_task(_run_bot(), name="discord-bot-start")
        ready_task = asyncio.create_task(self._ready_event.wait())
        done, _ = await asyncio.wait(
            {self._start_task, ready_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if ready_task in done:
            return
        ready_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await ready_task
        error = self._start_task.exception()
        if error is not None:
            logger.error("client.start_failed", error=str(error))
            raise error
        raise RuntimeError("Discord client stopped before it became ready.")

    async def close(self) -> None:
        if self._bot is not None:
            await self._bot.close()
            if self._start_task is not None and not self._start_task.done():
                self._start_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._start_task

    async def wait_until_ready(self) -> None:
        self._ensure_bot()
        assert self._ready_event is not None
        await self._ready_event.wait()

    async def send(self, *, channel_id: int, text: str) -> None:
        if self._bot is None:
            logger.error("send.not_started", channel_id=channel_id)
            return
        channel = self._bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self._bot.fetch_channel(channel_id)
            except discord.NotFound:
                logger.error("send.channel_not_found", channel_id=channel_id)
                return
            except discord.HTTPException as e:
                logger.error(
                    "send.fetch_channel_error", channel_id=channel_id, error=str(e)
                )
                return

        if not isinstance(channel, discord.abc.Messageable):
            logger.error(
                "send.not_messageable",
                channel_id=channel_id,
                channel_type=type(channel).__name__,
            )
            return

        try:
            await channel.send(content=text)
        except discord.HTTPException as e:
            logger.error(
                "send.error",
                channel_id=channel_id,
                error=str(e),
                status=getattr(e, "status", None),
            )
