"""Filesystem plugin discovery and registration.

Plugins live under one directory per kind (``commands/``, ``listeners/``,
``jobs/``, ``scripts/``). Every ``.py`` file found is imported; classes it
exports that provide the kind's capability are instantiated without
arguments. Commands are added to the command index, listeners and jobs are
started and released, scripts only run their import-time code.
"""

from __future__ import annotations

import hashlib
import importlib.util
import inspect
import re
import sys
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .commands import Command
from .logging import get_logger
from .scanner import find_module_files

if TYPE_CHECKING:
    from .context import BotContext

logger = get_logger(__name__)

MODULE_NAMESPACE = "botframe_plugins"


class PluginKind(StrEnum):
    COMMAND = "command"
    LISTENER = "listener"
    JOB = "job"
    SCRIPT = "script"

    @property
    def dirname(self) -> str:
        return f"{self.value}s"


@runtime_checkable
class Listener(Protocol):
    def start(self, context: BotContext) -> None: ...


@runtime_checkable
class Job(Protocol):
    def start(self, context: BotContext) -> None: ...


_CAPABILITIES: dict[PluginKind, tuple[type, str]] = {
    PluginKind.COMMAND: (Command, "execute"),
    PluginKind.LISTENER: (Listener, "start"),
    PluginKind.JOB: (Job, "start"),
}

LOAD_ORDER = (
    PluginKind.COMMAND,
    PluginKind.LISTENER,
    PluginKind.SCRIPT,
    PluginKind.JOB,
)


@dataclass(frozen=True, slots=True)
class PluginLoadError:
    kind: PluginKind
    path: str
    error: str


class PluginLoadFailed(RuntimeError):
    def __init__(self, record: PluginLoadError) -> None:
        self.record = record
        super().__init__(
            f"Failed to load {record.kind} plugin {record.path}: {record.error}"
        )


def _module_name(kind: PluginKind, path: Path, root: Path) -> str:
    try:
        relative = path.relative_to(root.resolve())
    except ValueError:
        relative = Path(path.name)
    raw_parts = relative.with_suffix("").parts
    parts = [re.sub(r"\W", "_", part) for part in raw_parts]
    if list(raw_parts) != parts:
        # `a-b.py` and `a_b.py` must not share a sys.modules entry.
        digest = hashlib.sha1(relative.as_posix().encode()).hexdigest()[:8]
        parts[-1] = f"{parts[-1]}_{digest}"
    return ".".join([MODULE_NAMESPACE, kind.dirname, *parts])


def import_plugin_module(path: Path, *, kind: PluginKind, root: Path) -> ModuleType:
    name = _module_name(kind, path, root)
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot import {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(name, None)
        raise
    return module


def exported_classes(module: ModuleType, member: str) -> Iterator[type]:
    """Yield classes defined in ``module`` that can be built and expose ``member``."""
    names = getattr(module, "__all__", None)
    if names is None:
        names = [name for name in vars(module) if not name.startswith("_")]
    for name in names:
        value = getattr(module, name, None)
        if not inspect.isclass(value):
            continue
        if value.__module__ != module.__name__:
            continue
        if inspect.isabstract(value) or getattr(value, "_is_protocol", False):
            continue
        if not callable(getattr(value, member, None)):
            continue
        yield value


class PluginRegistry:
    def __init__(
        self,
        context: BotContext,
        *,
        root: Path | None = None,
        directories: Mapping[PluginKind, Path] | None = None,
        strict: bool = False,
    ) -> None:
        self._context = context
        self._root = root
        self._directories = dict(directories or {})
        self._strict = strict
        self._errors: list[PluginLoadError] = []

    @property
    def load_errors(self) -> tuple[PluginLoadError, ...]:
        return tuple(self._errors)

    def get_load_errors(
        self, *, kind: PluginKind | None = None
    ) -> list[PluginLoadError]:
        return [err for err in self._errors if kind is None or err.kind == kind]

    def clear_load_errors(self, *, kind: PluginKind | None = None) -> None:
        if kind is None:
            self._errors.clear()
            return
        self._errors = [err for err in self._errors if err.kind != kind]

    def directory_for(self, kind: PluginKind) -> Path | None:
        directory = self._directories.get(kind)
        if directory is not None:
            return directory
        if self._root is None:
            return None
        return self._root / kind.dirname

    def register_command(self, command: Command) -> None:
        if not isinstance(command, Command):
            raise TypeError(f"{type(command).__name__} is not a command")
        self._context.commands.register(command)

    def start_listener(self, listener: Listener) -> None:
        listener.start(self._context)
        logger.debug("plugins.listener_started", listener=type(listener).__name__)

    def start_job(self, job: Job) -> None:
        job.start(self._context)
        logger.debug("plugins.job_started", job=type(job).__name__)

    def load_all(self) -> dict[PluginKind, int]:
        return {kind: self.load(kind) for kind in LOAD_ORDER}

    def load_commands(self, directory: Path | None = None) -> int:
        return self.load(PluginKind.COMMAND, directory)

    def load_listeners(self, directory: Path | None = None) -> int:
        return self.load(PluginKind.LISTENER, directory)

    def load_jobs(self, directory: Path | None = None) -> int:
        return self.load(PluginKind.JOB, directory)

    def load_scripts(self, directory: Path | None = None) -> int:
        return self.load(PluginKind.SCRIPT, directory)

    def load(self, kind: PluginKind, directory: Path | None = None) -> int:
        """Run one discovery pass and return how many plugins were accepted."""
        directory = directory or self.directory_for(kind)
        if directory is None:
            return 0
        logger.debug("plugins.scan", kind=str(kind), directory=str(directory))
        files = find_module_files(directory)
        if not files:
            return 0

        accepted = 0
        for path in files:
            logger.debug("plugins.hit", kind=str(kind), path=str(path), verbose=True)
            try:
                module = import_plugin_module(path, kind=kind, root=directory)
                if kind is PluginKind.SCRIPT:
                    accepted += 1
                    continue
                accepted += self._activate(kind, module)
            except Exception as exc:
                record = PluginLoadError(
                    kind=kind,
                    path=str(path),
                    error=f"{exc.__class__.__name__}: {exc}",
                )
                self._errors.append(record)
                if self._strict:
                    raise PluginLoadFailed(record) from exc
                logger.error(
                    "plugins.load_failed",
                    kind=str(kind),
                    path=str(path),
                    error=record.error,
                )

        logger.info(
            "plugins.loaded",
            kind=str(kind),
            directory=str(directory),
            count=accepted,
            files=len(files),
        )
        return accepted

    def _activate(self, kind: PluginKind, module: ModuleType) -> int:
        capability, member = _CAPABILITIES[kind]
        instances: list[Any] = [cls() for cls in exported_classes(module, member)]
        accepted = [obj for obj in instances if isinstance(obj, capability)]
        for obj in accepted:
            if kind is PluginKind.COMMAND:
                self.register_command(obj)
            elif kind is PluginKind.LISTENER:
                self.start_listener(obj)
            else:
                self.start_job(obj)
        return len(accepted)
