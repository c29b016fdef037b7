from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class Author:
    id: int
    bot: bool = False
    name: str | None = None


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    content: str
    author: Author
    channel_id: int
    message_id: int
    guild_id: int | None = None
    member_id: int | None = None
    raw: Any | None = field(default=None, compare=False, hash=False, repr=False)


class Transport(Protocol):
    async def send(self, *, channel_id: int, text: str) -> None: ...
