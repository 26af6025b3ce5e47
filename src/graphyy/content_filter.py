# graphyy/content_filter.py
from __future__ import annotations

from typing import Iterable, Protocol, TypeVar

from graphyy.utils import path_ext

MAX_CONTENT_BYTES = 100_000
DEFAULT_MAX_FILES = 200

# Extensions whose text is fetched and scanned for references.
ANALYSABLE_EXTENSIONS: frozenset[str] = frozenset(
    {"ts", "tsx", "js", "jsx", "mjs", "cjs", "py", "go", "rs", "rb", "java", "cs", "cpp", "c"}
)

# Directory names never considered, at any depth.
EXCLUDED_DIRS: frozenset[str] = frozenset(
    {
        ".git",  # version control metadata
        "node_modules",  # dependency install
        "dist",  # build output
        "build",  # build output
        ".next",  # framework cache
        "vendor",  # vendored code
        "__pycache__",  # bytecode cache
    }
)


class _HasPath(Protocol):
    path: str


T = TypeVar("T", bound=_HasPath)


def should_fetch_content(path: str, size: int | None = None) -> bool:
    if size is not None and size > MAX_CONTENT_BYTES:
        return False
    return path_ext(path) in ANALYSABLE_EXTENSIONS


def is_excluded_path(path: str) -> bool:
    dirs = path.split("/")[:-1]
    return any(d in EXCLUDED_DIRS for d in dirs)


def select_snapshot_files(entries: Iterable[T], *, max_files: int = DEFAULT_MAX_FILES) -> list[T]:
    """
    Contract:
    - excluded directories are dropped first
    - input order is preserved (no re-sorting)
    - the cap applies to what survives exclusion; anything past it is not part of the snapshot
    """
    kept = [e for e in entries if e.path and not is_excluded_path(e.path)]
    return kept[: max(0, max_files)]
