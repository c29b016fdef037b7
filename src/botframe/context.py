from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from anyio.abc import TaskGroup

from .buckets import SettingsCache
from .commands import CommandIndex
from .logging import get_logger
from .settings import BotframeSettings
from .transport import Transport

logger = get_logger(__name__)


@dataclass(slots=True)
class BotContext:
    """Everything a running bot shares: settings, client, commands and buckets."""

    settings: BotframeSettings
    transport: Transport
    commands: CommandIndex
    buckets: SettingsCache
    client: Any = None
    config_path: Path | None = None
    task_group: TaskGroup | None = None

    @property
    def environment(self) -> str:
        return self.settings.environment

    @property
    def allow_code_execution(self) -> bool:
        return self.settings.options.allow_code_execution

    def get_logger(self, name: str | None = None) -> Any:
        return get_logger(name or "botframe.bot")

    def start_soon(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        name: str | None = None,
    ) -> None:
        if self.task_group is None:
            raise RuntimeError("Background tasks need a running bot task group.")
        name = name or _task_name(func)
        self.task_group.start_soon(_guarded, func, args, name, name=name)


async def _guarded(
    func: Callable[..., Awaitable[Any]], args: tuple[Any, ...], name: str
) -> None:
    # A failing job must not cancel the bot's task group.
    try:
        await func(*args)
    except Exception:
        logger.exception("jobs.failed", task=name)


def _task_name(func: Callable[..., Any]) -> str:
    return getattr(func, "__qualname__", None) or repr(func)
