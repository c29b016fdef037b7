from __future__ import annotations

import inspect
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from .config import ConfigError
from .logging import get_logger

if TYPE_CHECKING:
    from .input import Input

logger = get_logger(__name__)


@runtime_checkable
class Command(Protocol):
    name: str
    aliases: Sequence[str]
    usage: str
    min_args: int

    async def execute(self, input: Input) -> None: ...


class CommandConflictError(ConfigError):
    def __init__(self, token: str, existing: Command, incoming: Command) -> None:
        self.token = token
        self.existing = existing
        self.incoming = incoming
        super().__init__(
            f"Command {incoming.name!r} claims {token!r}, "
            f"already taken by {existing.name!r}."
        )


def command_tokens(command: Command) -> tuple[str, ...]:
    return (command.name, *command.aliases)


def command_matches(command: Command, token: str) -> bool:
    return token == command.name or token in command.aliases


class CommandIndex:
    """Registered commands, resolved by name or alias in registration order."""

    def __init__(self, *, allow_shadowing: bool = False) -> None:
        self._commands: list[Command] = []
        self._allow_shadowing = allow_shadowing

    def __len__(self) -> int:
        return len(self._commands)

    def __iter__(self) -> Iterator[Command]:
        return iter(self._commands)

    def register(self, command: Command) -> None:
        if not inspect.iscoroutinefunction(command.execute):
            raise TypeError(
                f"Command {command.name!r} must define `async def execute`."
            )
        if isinstance(command.aliases, str):
            raise TypeError(
                f"Command {command.name!r} aliases must be a sequence of strings."
            )
        for token in command_tokens(command):
            existing = self.resolve(token)
            if existing is None or existing is command:
                continue
            if not self._allow_shadowing:
                raise CommandConflictError(token, existing, command)
            logger.warning(
                "commands.shadowed",
                token=token,
                command=command.name,
                reachable=existing.name,
            )
        self._commands.append(command)
        logger.debug(
            "commands.registered",
            command=command.name,
            aliases=list(command.aliases),
            min_args=command.min_args,
        )

    def resolve(self, token: str) -> Command | None:
        for command in self._commands:
            if command_matches(command, token):
                return command
        return None

    def names(self) -> list[str]:
        return [command.name for command in self._commands]
