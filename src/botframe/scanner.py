"""Recursive discovery of plugin module files."""

from __future__ import annotations

from pathlib import Path

MODULE_SUFFIX = ".py"

_SKIP_DIRS = frozenset({"__pycache__"})


def find_module_files(root: Path) -> list[Path]:
    """Return absolute paths of loadable modules under ``root``, depth first.

    A missing root is treated as an empty plugin tree.
    """
    root = Path(root).expanduser()
    if not root.is_dir():
        return []
    found: list[Path] = []
    _walk(root.resolve(), found)
    return found


def _walk(directory: Path, found: list[Path]) -> None:
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if entry.is_dir():
            if entry.name not in _SKIP_DIRS:
                _walk(entry, found)
        elif entry.name.lower().endswith(MODULE_SUFFIX):
            found.append(entry)
