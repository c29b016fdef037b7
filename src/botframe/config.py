from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

HOME_CONFIG_PATH = Path.home() / ".botframe" / "botframe.toml"
CONFIG_ENV_VAR = "BOTFRAME_CONFIG"

STARTER_CONFIG: dict[str, Any] = {
    "environment": "test",
    "options": {"allow_code_execution": False, "logging_level": "normal"},
    "authentication": {"discord": {"token": ""}},
    "plugins": {"root": "bot", "strict": False},
    "guilds": {"default_prefix": "!"},
}


class ConfigError(RuntimeError):
    pass


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return HOME_CONFIG_PATH


def read_config(cfg_path: Path) -> dict:
    if cfg_path.exists() and not cfg_path.is_file():
        raise ConfigError(f"Config path {cfg_path} exists but is not a file.") from None
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def _toml_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _format_toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, Path):
        return f'"{_toml_escape(str(value))}"'
    if isinstance(value, str):
        return f'"{_toml_escape(value)}"'
    if isinstance(value, (list, tuple)):
        inner = ", ".join(_format_toml_value(item) for item in value)
        return f"[{inner}]"
    raise ConfigError(f"Unsupported config value {value!r}")


def dump_toml(config: dict[str, Any]) -> str:
    lines: list[str] = []

    def write_table(name: str, table: dict[str, Any]) -> None:
        scalars = {k: v for k, v in table.items() if not isinstance(v, dict)}
        if scalars:
            if lines:
                lines.append("")
            lines.append(f"[{name}]")
            for key, value in scalars.items():
                lines.append(f"{key} = {_format_toml_value(value)}")
        for key, value in table.items():
            if isinstance(value, dict):
                write_table(f"{name}.{key}", value)

    for key, value in config.items():
        if not isinstance(value, dict):
            lines.append(f"{key} = {_format_toml_value(value)}")

    for key, value in config.items():
        if isinstance(value, dict):
            write_table(key, value)

    return "\n".join(lines) + "\n"


def write_config(config: dict[str, Any], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_toml(config), encoding="utf-8")


def write_starter_config(path: Path) -> None:
    """Write a config file with every key present and an empty bot token."""
    write_config(STARTER_CONFIG, path)
