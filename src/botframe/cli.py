from __future__ import annotations

from pathlib import Path

import anyio
import typer

from . import __version__
from .app import (
    build_context,
    build_registry,
    plugin_directories,
    resolve_logging_level,
    run_bot,
)
from .config import ConfigError, resolve_config_path, write_starter_config
from .logging import setup_logging
from .plugins import PluginKind, PluginLoadFailed
from .scanner import find_module_files
from .settings import BotframeSettings, load_settings


class _NullTransport:
    async def send(self, *, channel_id: int, text: str) -> None:
        _ = channel_id, text


class _NullStore:
    async def load_guild(self, guild_id: int) -> dict:
        return {}

    async def load_member(self, member_id: int) -> dict:
        return {}

    async def save_guild(self, guild_id: int, data: dict) -> None:
        return None

    async def save_member(self, member_id: int, data: dict) -> None:
        return None


def _welcome(config_path: Path) -> None:
    typer.echo("Welcome!", err=True)
    typer.echo(f"A starter config file is at {config_path}.", err=True)
    typer.echo("Please edit this file and configure a Discord bot token.", err=True)


def _load_or_exit(config_path: Path) -> BotframeSettings:
    try:
        settings, _ = load_settings(config_path)
    except ConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    return settings


def run(
    config: Path | None = typer.Option(
        None, "--config", "-c", help="Path to botframe.toml."
    ),
    debug: bool = typer.Option(False, "--debug", help="Log debug output."),
    verbose: bool = typer.Option(
        False, "--verbose", help="Log everything, including per-file plugin hits."
    ),
) -> None:
    """Connect to Discord, load plugins and dispatch commands."""
    config_path = resolve_config_path(config)
    if not config_path.exists():
        write_starter_config(config_path)
        _welcome(config_path)
        raise typer.Exit(code=0)

    settings = _load_or_exit(config_path)
    if settings.discord_token() is None:
        _welcome(config_path)
        raise typer.Exit(code=0)

    setup_logging(resolve_logging_level(settings, debug=debug, verbose=verbose))
    try:
        anyio.run(run_bot, settings, config_path)
    except ConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def plugins_cmd(
    config: Path | None = typer.Option(
        None, "--config", "-c", help="Path to botframe.toml."
    ),
    load: bool = typer.Option(
        False,
        "--load/--no-load",
        help="Import command plugins to validate them and surface errors.",
    ),
) -> None:
    """List discovered plugin files and optionally validate commands."""
    config_path = resolve_config_path(config)
    settings = _load_or_exit(config_path)
    directories = plugin_directories(settings, config_path)

    for kind in PluginKind:
        directory = directories[kind]
        typer.echo(f"{kind.dirname} ({directory}):")
        files = find_module_files(directory)
        if not files:
            typer.echo("  (none)")
        for path in files:
            typer.echo(f"  {path.relative_to(directory.resolve())}")

    if not load:
        return

    setup_logging("normal")
    context = build_context(
        settings,
        transport=_NullTransport(),
        store=_NullStore(),
        config_path=config_path,
    )
    registry = build_registry(context)
    try:
        registry.load_commands()
    except PluginLoadFailed as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo("commands:")
    for command in context.commands:
        aliases = ", ".join(command.aliases) or "-"
        typer.echo(f"  {command.name} (aliases: {aliases}) usage: {command.usage}")
    errors = registry.load_errors
    if errors:
        typer.echo("errors:")
        for err in errors:
            typer.echo(f"  {err.path}: {err.error}")
        raise typer.Exit(code=1)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Plugin host for Discord bots."""


def create_app() -> typer.Typer:
    app = typer.Typer(
        add_completion=False,
        no_args_is_help=True,
        help="Plugin host for Discord bots.",
    )
    app.callback()(app_main)
    app.command(name="run")(run)
    app.command(name="plugins")(plugins_cmd)
    return app


def main() -> None:
    app = create_app()
    app()


if __name__ == "__main__":
    main()
