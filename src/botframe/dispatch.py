"""Routing of incoming chat messages to commands."""

from __future__ import annotations

from enum import StrEnum

from .buckets import SettingsLoadError
from .commands import Command
from .context import BotContext
from .input import Input
from .logging import bind_message_context, clear_context, get_logger
from .transport import IncomingMessage

logger = get_logger(__name__)

FAILURE_TEXT = "Something went wrong while running that command."
UNAVAILABLE_TEXT = "Settings are unavailable right now, please try again shortly."


class DispatchOutcome(StrEnum):
    IGNORED = "ignored"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"
    USAGE = "usage"
    EXECUTED = "executed"
    FAILED = "failed"


def usage_message(command: Command) -> str:
    return f"Usage:  `{command.usage}`"


class Dispatcher:
    def __init__(self, context: BotContext) -> None:
        self._context = context

    async def __call__(self, message: IncomingMessage) -> DispatchOutcome:
        return await self.handle(message)

    async def handle(self, message: IncomingMessage) -> DispatchOutcome:
        if message.guild_id is None:
            return DispatchOutcome.IGNORED

        buckets = self._context.buckets
        try:
            guild = await buckets.guild(message.guild_id)
        except SettingsLoadError:
            # Without the guild bucket the prefix is unknown, so stay quiet.
            return DispatchOutcome.UNAVAILABLE

        if not message.content.startswith(guild.prefix):
            return DispatchOutcome.IGNORED
        if message.author.bot:
            return DispatchOutcome.IGNORED

        try:
            member = await buckets.member(message.member_id or message.author.id)
        except SettingsLoadError:
            await self._reply(message, UNAVAILABLE_TEXT)
            return DispatchOutcome.UNAVAILABLE

        input = Input.parse(
            message,
            guild=guild,
            member=member,
            commands=self._context.commands,
            context=self._context,
        )
        command = input.command
        if command is None:
            logger.debug("dispatch.unknown", name=input.name, verbose=True)
            return DispatchOutcome.UNKNOWN

        if not input.is_proper:
            logger.debug(
                "dispatch.usage",
                command=command.name,
                args=len(input.args),
                min_args=command.min_args,
            )
            await self._reply(message, usage_message(command))
            return DispatchOutcome.USAGE

        bind_message_context(
            command=command.name,
            guild_id=message.guild_id,
            channel_id=message.channel_id,
            author_id=message.author.id,
        )
        try:
            logger.info("command.execute", args=len(input.args))
            await command.execute(input)
        except Exception as exc:
            logger.exception(
                "command.failed",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            await self._reply(message, FAILURE_TEXT)
            return DispatchOutcome.FAILED
        finally:
            clear_context()
        return DispatchOutcome.EXECUTED

    async def _reply(self, message: IncomingMessage, text: str) -> None:
        await self._context.transport.send(channel_id=message.channel_id, text=text)
