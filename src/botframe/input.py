from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .buckets import GuildBucket, MemberBucket
from .commands import Command, CommandIndex
from .transport import IncomingMessage

if TYPE_CHECKING:
    from .context import BotContext


def split_args(text: str) -> tuple[str, ...]:
    """Split command arguments on whitespace, keeping quotes and backslashes."""
    return tuple(text.split())


def split_command(content: str, prefix: str) -> tuple[str, str]:
    """Return the command token and the raw argument text after ``prefix``."""
    remainder = content[len(prefix) :] if content.startswith(prefix) else content
    parts = remainder.strip().split(maxsplit=1)
    if not parts:
        return "", ""
    name = parts[0]
    args_text = parts[1] if len(parts) > 1 else ""
    return name, args_text


@dataclass(frozen=True, slots=True)
class Input:
    message: IncomingMessage
    prefix: str
    name: str
    args_text: str
    args: tuple[str, ...]
    command: Command | None
    guild: GuildBucket
    member: MemberBucket
    context: BotContext | None = field(default=None, compare=False, repr=False)

    @classmethod
    def parse(
        cls,
        message: IncomingMessage,
        *,
        guild: GuildBucket,
        member: MemberBucket,
        commands: CommandIndex,
        context: BotContext | None = None,
    ) -> Input:
        name, args_text = split_command(message.content, guild.prefix)
        return cls(
            message=message,
            prefix=guild.prefix,
            name=name,
            args_text=args_text,
            args=split_args(args_text),
            command=commands.resolve(name) if name else None,
            guild=guild,
            member=member,
            context=context,
        )

    @property
    def is_proper(self) -> bool:
        if self.command is None:
            return False
        return len(self.args) >= self.command.min_args

    async def reply(self, text: str) -> None:
        if self.context is None:
            raise RuntimeError("Input has no context to reply through.")
        await self.context.transport.send(
            channel_id=self.message.channel_id, text=text
        )
