"""Per-guild and per-member settings, loaded lazily once per process."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import anyio

from .logging import get_logger
from .settings import DEFAULT_PREFIX
from .store import SettingsStore

logger = get_logger(__name__)


class SettingsLoadError(RuntimeError):
    def __init__(self, kind: str, entity_id: int) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"Failed to load {kind} settings for {entity_id}.")


@dataclass(slots=True)
class GuildBucket:
    id: int
    prefix: str = DEFAULT_PREFIX
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_data(
        cls, guild_id: int, raw: dict[str, Any], *, default_prefix: str
    ) -> GuildBucket:
        data = dict(raw)
        prefix = data.pop("prefix", None)
        if not isinstance(prefix, str) or not prefix:
            prefix = default_prefix
        return cls(id=guild_id, prefix=prefix, data=data)

    def to_data(self) -> dict[str, Any]:
        return {**self.data, "prefix": self.prefix}


@dataclass(slots=True)
class MemberBucket:
    id: int
    data: dict[str, Any] = field(default_factory=dict)

    def to_data(self) -> dict[str, Any]:
        return dict(self.data)


@dataclass(slots=True)
class _PendingLoad:
    done: anyio.Event = field(default_factory=anyio.Event)
    bucket: Any = None
    error: BaseException | None = None


class SettingsCache:
    """Keyed bucket cache. Concurrent first requests for one id share one load."""

    def __init__(
        self, store: SettingsStore, *, default_prefix: str = DEFAULT_PREFIX
    ) -> None:
        self._store = store
        self._default_prefix = default_prefix
        self._guilds: dict[int, GuildBucket] = {}
        self._members: dict[int, MemberBucket] = {}
        self._inflight: dict[tuple[str, int], _PendingLoad] = {}

    @property
    def store(self) -> SettingsStore:
        return self._store

    def cached_guild(self, guild_id: int) -> GuildBucket | None:
        return self._guilds.get(guild_id)

    def cached_member(self, member_id: int) -> MemberBucket | None:
        return self._members.get(member_id)

    async def guild(self, guild_id: int) -> GuildBucket:
        return await self._ensure("guild", guild_id, self._guilds, self._load_guild)

    async def member(self, member_id: int) -> MemberBucket:
        return await self._ensure(
            "member", member_id, self._members, self._load_member
        )

    async def save_guild(self, bucket: GuildBucket) -> None:
        await self._store.save_guild(bucket.id, bucket.to_data())

    async def save_member(self, bucket: MemberBucket) -> None:
        await self._store.save_member(bucket.id, bucket.to_data())

    async def _load_guild(self, guild_id: int) -> GuildBucket:
        raw = await self._store.load_guild(guild_id)
        return GuildBucket.from_data(
            guild_id, raw, default_prefix=self._default_prefix
        )

    async def _load_member(self, member_id: int) -> MemberBucket:
        raw = await self._store.load_member(member_id)
        return MemberBucket(id=member_id, data=dict(raw))

    async def _ensure(
        self,
        kind: str,
        entity_id: int,
        cache: dict[int, Any],
        loader: Callable[[int], Awaitable[Any]],
    ) -> Any:
        bucket = cache.get(entity_id)
        if bucket is not None:
            return bucket

        key = (kind, entity_id)
        pending = self._inflight.get(key)
        if pending is not None:
            await pending.done.wait()
            if pending.bucket is None:
                raise SettingsLoadError(kind, entity_id) from pending.error
            return pending.bucket

        pending = _PendingLoad()
        self._inflight[key] = pending
        logger.debug("settings.load", kind=kind, entity_id=entity_id)
        try:
            bucket = await loader(entity_id)
        except Exception as exc:
            pending.error = exc
            logger.warning(
                "settings.load_failed",
                kind=kind,
                entity_id=entity_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            raise SettingsLoadError(kind, entity_id) from exc
        else:
            cache[entity_id] = bucket
            pending.bucket = bucket
        finally:
            del self._inflight[key]
            pending.done.set()
        return bucket
