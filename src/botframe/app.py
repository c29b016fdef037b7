"""Startup, plugin loading and graceful shutdown for a running bot."""

from __future__ import annotations

import signal
from pathlib import Path
from typing import Any

import anyio

from .buckets import SettingsCache
from .commands import CommandIndex
from .config import ConfigError
from .context import BotContext
from .discord.client import DiscordBotClient
from .dispatch import Dispatcher
from .logging import LoggingLevel, get_logger
from .plugins import PluginKind, PluginRegistry
from .settings import BotframeSettings
from .store import JsonSettingsStore, SettingsStore
from .transport import Transport

logger = get_logger(__name__)


def resolve_logging_level(
    settings: BotframeSettings | None, *, debug: bool = False, verbose: bool = False
) -> LoggingLevel:
    if debug:
        return "debug"
    if verbose:
        return "verbose"
    if settings is None:
        return "normal"
    return settings.options.logging_level


def plugin_directories(
    settings: BotframeSettings, config_path: Path
) -> dict[PluginKind, Path]:
    return {
        kind: settings.plugin_dir(kind.dirname, config_path=config_path)
        for kind in PluginKind
    }


def build_context(
    settings: BotframeSettings,
    *,
    transport: Transport,
    store: SettingsStore,
    client: Any = None,
    config_path: Path | None = None,
) -> BotContext:
    return BotContext(
        settings=settings,
        transport=transport,
        commands=CommandIndex(allow_shadowing=settings.plugins.allow_alias_shadowing),
        buckets=SettingsCache(store, default_prefix=settings.guilds.default_prefix),
        client=client,
        config_path=config_path,
    )


def build_registry(context: BotContext) -> PluginRegistry:
    settings = context.settings
    directories: dict[PluginKind, Path] = {}
    if context.config_path is not None:
        directories = plugin_directories(settings, context.config_path)
    return PluginRegistry(
        context,
        directories=directories,
        strict=settings.plugins.strict,
    )


async def wait_for_shutdown() -> None:
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for signum in signals:
            logger.info("bot.signal_received", signal=signal.Signals(signum).name)
            return


async def run_bot(settings: BotframeSettings, config_path: Path) -> None:
    token = settings.discord_token()
    if token is None:
        raise ConfigError(f"Missing Discord token in {config_path}.")

    client = DiscordBotClient(token, guild_id=settings.authentication.discord.guild_id)
    store = JsonSettingsStore(settings.resolve_state_path(config_path=config_path))
    context = build_context(
        settings,
        transport=client,
        store=store,
        client=client,
        config_path=config_path,
    )

    async with anyio.create_task_group() as tg:
        context.task_group = tg
        logger.info("bot.logging_in", environment=settings.environment)
        await client.start()
        try:
            logger.debug("bot.loading_components")
            registry = build_registry(context)
            counts = registry.load_all()
            client.set_message_handler(Dispatcher(context))
            logger.info(
                "bot.online",
                commands=len(context.commands),
                plugins={str(kind): count for kind, count in counts.items()},
                load_errors=len(registry.load_errors),
            )
            await wait_for_shutdown()
            logger.info("bot.stopping")
        finally:
            await client.close()
        logger.debug("bot.stopped", verbose=True)
        tg.cancel_scope.cancel()
