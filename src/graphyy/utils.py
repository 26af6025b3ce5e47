# graphyy/utils.py
from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Any

LANGUAGE_BY_EXT: dict[str, str] = {
    "ts": "TypeScript",
    "tsx": "TypeScript",
    "js": "JavaScript",
    "jsx": "JavaScript",
    "py": "Python",
    "go": "Go",
    "rs": "Rust",
    "rb": "Ruby",
    "java": "Java",
    "cs": "C#",
    "cpp": "C++",
    "c": "C",
    "md": "Markdown",
    "json": "JSON",
    "yaml": "YAML",
    "yml": "YAML",
    "css": "CSS",
    "scss": "SCSS",
    "html": "HTML",
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def sha256_bytes(b: bytes) -> str:
    h = hashlib.sha256()
    h.update(b)
    return h.hexdigest()


def sha256_text(s: str) -> str:
    return sha256_bytes(s.encode("utf-8"))


# -----------------------------
# Path helpers
# -----------------------------


def basename(path: str) -> str:
    """Last "/" segment ("src/app/page.tsx" -> "page.tsx")."""
    return (path or "").rsplit("/", 1)[-1]


def path_ext(path: str) -> str:
    """
    Lower-cased text after the last "." of the final segment.

    A name without a dot yields the whole name ("Makefile" -> "makefile"),
    which never collides with a real extension.
    """
    return basename(path).rsplit(".", 1)[-1].lower()


def detect_language(path: str) -> str | None:
    return LANGUAGE_BY_EXT.get(path_ext(path))


def parent_dir(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


# -----------------------------
# Stable serialization helpers
# -----------------------------
# Artifacts must serialize byte-identically across reruns over the same input.


def stable_json_dumps(obj: Any) -> str:
    """
    Deterministic JSON serialization for JSON-like objects.
    - sort keys
    - stable separators
    - no ASCII-forcing (keep unicode stable; edge ids contain "→")
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
