"""Persisted guild and member settings."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Protocol

import anyio
import msgspec

from .logging import get_logger

logger = get_logger(__name__)

STATE_VERSION = 1


class SettingsStore(Protocol):
    async def load_guild(self, guild_id: int) -> dict[str, Any]: ...

    async def load_member(self, member_id: int) -> dict[str, Any]: ...

    async def save_guild(self, guild_id: int, data: dict[str, Any]) -> None: ...

    async def save_member(self, member_id: int, data: dict[str, Any]) -> None: ...


class _SettingsState(msgspec.Struct, forbid_unknown_fields=False):
    version: int
    guilds: dict[str, dict[str, Any]] = msgspec.field(default_factory=dict)
    members: dict[str, dict[str, Any]] = msgspec.field(default_factory=dict)


def _new_state() -> _SettingsState:
    return _SettingsState(version=STATE_VERSION)


def _atomic_write(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f"{path.suffix}.tmp")
    tmp_path.write_bytes(payload)
    os.replace(tmp_path, path)


class JsonSettingsStore:
    """Settings buckets kept in one JSON file, reloaded when it changes on disk."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = anyio.Lock()
        self._loaded = False
        self._mtime_ns: int | None = None
        self._state = _new_state()

    @property
    def path(self) -> Path:
        return self._path

    def _stat_mtime_ns(self) -> int | None:
        try:
            return self._path.stat().st_mtime_ns
        except FileNotFoundError:
            return None

    def _reload_locked_if_needed(self) -> None:
        current = self._stat_mtime_ns()
        if self._loaded and current == self._mtime_ns:
            return
        self._load_locked()

    def _load_locked(self) -> None:
        self._loaded = True
        self._mtime_ns = self._stat_mtime_ns()
        if self._mtime_ns is None:
            self._state = _new_state()
            return
        try:
            state = msgspec.json.decode(
                self._path.read_bytes(), type=_SettingsState
            )
        except (OSError, msgspec.DecodeError) as exc:
            logger.warning(
                "settings_store.load_failed", path=str(self._path), error=str(exc)
            )
            self._set_aside_locked()
            return
        if state.version != STATE_VERSION:
            logger.warning(
                "settings_store.version_mismatch",
                path=str(self._path),
                version=state.version,
                expected=STATE_VERSION,
            )
            self._set_aside_locked()
            return
        self._state = state

    def _set_aside_locked(self) -> None:
        # The next save starts from an empty state, so keep the unreadable file.
        backup = self._path.with_suffix(f"{self._path.suffix}.corrupt")
        try:
            os.replace(self._path, backup)
        except OSError as exc:
            logger.error(
                "settings_store.set_aside_failed", path=str(self._path), error=str(exc)
            )
        else:
            logger.warning("settings_store.set_aside", backup=str(backup))
        self._mtime_ns = self._stat_mtime_ns()
        self._state = _new_state()

    def _save_locked(self) -> None:
        _atomic_write(self._path, msgspec.json.format(msgspec.json.encode(self._state)))
        self._mtime_ns = self._stat_mtime_ns()

    async def load_guild(self, guild_id: int) -> dict[str, Any]:
        async with self._lock:
            self._reload_locked_if_needed()
            return dict(self._state.guilds.get(str(guild_id), {}))

    async def load_member(self, member_id: int) -> dict[str, Any]:
        async with self._lock:
            self._reload_locked_if_needed()
            return dict(self._state.members.get(str(member_id), {}))

    async def save_guild(self, guild_id: int, data: dict[str, Any]) -> None:
        async with self._lock:
            self._reload_locked_if_needed()
            self._state.guilds[str(guild_id)] = dict(data)
            self._save_locked()

    async def save_member(self, member_id: int, data: dict[str, Any]) -> None:
        async with self._lock:
            self._reload_locked_if_needed()
            self._state.members[str(member_id)] = dict(data)
            self._save_locked()
