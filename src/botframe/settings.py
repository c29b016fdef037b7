from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_serializer,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import TomlConfigSettingsSource

from .config import ConfigError, resolve_config_path
from .logging import LoggingLevel

DEFAULT_PREFIX = "!"


class OptionsSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    allow_code_execution: bool = False
    logging_level: LoggingLevel = "normal"


class DiscordAuthSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    token: SecretStr | None = None
    guild_id: int | None = None

    @field_validator("token", mode="before")
    @classmethod
    def _validate_token(cls, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("token must be a string")
        return value.strip() or None

    @field_serializer("token")
    def _dump_token(self, value: SecretStr | None) -> str | None:
        return value.get_secret_value() if value else None


class AuthenticationSettings(BaseModel):
    discord: DiscordAuthSettings = Field(default_factory=DiscordAuthSettings)

    model_config = ConfigDict(extra="allow")


class PluginsSettings(BaseModel):
    root: str = "bot"
    commands_dir: str | None = None
    listeners_dir: str | None = None
    jobs_dir: str | None = None
    scripts_dir: str | None = None
    strict: bool = False
    allow_alias_shadowing: bool = False

    model_config = ConfigDict(extra="forbid")


class GuildSettings(BaseModel):
    default_prefix: str = DEFAULT_PREFIX

    model_config = ConfigDict(extra="forbid")

    @field_validator("default_prefix", mode="before")
    @classmethod
    def _validate_prefix(cls, value: Any) -> Any:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("default_prefix must be a non-empty string")
        return value.strip()


class BotframeSettings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="allow",
        env_prefix="BOTFRAME__",
        env_nested_delimiter="__",
    )

    environment: Literal["test", "production"] = "test"
    options: OptionsSettings = Field(default_factory=OptionsSettings)
    authentication: AuthenticationSettings = Field(
        default_factory=AuthenticationSettings
    )
    plugins: PluginsSettings = Field(default_factory=PluginsSettings)
    guilds: GuildSettings = Field(default_factory=GuildSettings)
    state_path: str | None = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    def discord_token(self) -> str | None:
        token = self.authentication.discord.token
        if token is None:
            return None
        return token.get_secret_value() or None

    def plugin_dir(self, kind: str, *, config_path: Path) -> Path:
        override = getattr(self.plugins, f"{kind}_dir")
        root = Path(self.plugins.root).expanduser()
        if not root.is_absolute():
            root = config_path.parent / root
        if override is None:
            return root / kind
        path = Path(override).expanduser()
        return path if path.is_absolute() else root / path

    def resolve_state_path(self, *, config_path: Path) -> Path:
        if self.state_path is None:
            return config_path.with_name("botframe_settings.json")
        path = Path(self.state_path).expanduser()
        return path if path.is_absolute() else config_path.parent / path


def load_settings(path: str | Path | None = None) -> tuple[BotframeSettings, Path]:
    cfg_path = resolve_config_path(path)
    _ensure_config_file(cfg_path)
    return _load_settings_from_path(cfg_path), cfg_path


def _ensure_config_file(cfg_path: Path) -> None:
    if cfg_path.exists() and not cfg_path.is_file():
        raise ConfigError(f"Config path {cfg_path} exists but is not a file.") from None
    if not cfg_path.exists():
        raise ConfigError(f"Missing config file {cfg_path}.") from None


def _load_settings_from_path(cfg_path: Path) -> BotframeSettings:
    cfg = dict(BotframeSettings.model_config)
    cfg["toml_file"] = cfg_path
    Bound = type(
        "BotframeSettingsBound",
        (BotframeSettings,),
        {"model_config": SettingsConfigDict(**cfg)},
    )
    try:
        return Bound()
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {cfg_path}: {exc}") from exc
