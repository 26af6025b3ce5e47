# graphyy/resolver.py
from __future__ import annotations

import re
from typing import Container

from graphyy.utils import parent_dir

ROOT_ALIAS = "@/"
HOME_ALIAS = "~/"

# Fixed priority order; the first candidate present in the snapshot wins.
CANDIDATE_SUFFIXES: tuple[str, ...] = (
    "",
    ".ts",
    ".tsx",
    ".js",
    "/index.ts",
    "/index.tsx",
)

_CUR_DIR_SEGMENT_RE = re.compile(r"/\./")
_MULTI_SLASH_RE = re.compile(r"/{2,}")


def is_internal_specifier(specifier: str) -> bool:
    """Relative (".", ".."), root-alias ("@/") or home-alias ("~/") specifiers may point into the repo."""
    return specifier.startswith((".", ROOT_ALIAS, HOME_ALIAS))


def _fold_parent_segments(path: str) -> str | None:
    out: list[str] = []
    for seg in path.split("/"):
        if seg in ("", "."):
            continue
        if seg == "..":
            if not out:
                return None  # climbs above the snapshot root
            out.pop()
            continue
        out.append(seg)
    return "/".join(out)


def normalize_stem(specifier: str, from_path: str) -> str | None:
    """
    Specifier -> repo-relative stem (no extension guessing yet).

    - "@/x" is rooted at the snapshot root
    - everything else is joined onto the referencing file's directory
      ("~/" included: there is no home directory inside a snapshot)
    """
    if specifier.startswith(ROOT_ALIAS):
        joined = specifier[len(ROOT_ALIAS) :]
    else:
        from_dir = parent_dir(from_path)
        joined = f"{from_dir}/{specifier}" if from_dir else specifier

    joined = _CUR_DIR_SEGMENT_RE.sub("/", joined)
    joined = _MULTI_SLASH_RE.sub("/", joined)
    stem = _fold_parent_segments(joined)
    return stem or None


def candidate_paths(stem: str) -> list[str]:
    return [stem + suffix for suffix in CANDIDATE_SUFFIXES]


def resolve_reference(specifier: str, from_path: str, known_paths: Container[str]) -> str | None:
    """
    Best-effort module resolution against the snapshot's own path set.

    Returns the matching repo path, or None for external packages and for
    anything that does not land on a known file. This approximates bundler
    resolution and does not read tsconfig/jsconfig or package manifests.
    """
    s = (specifier or "").strip()
    if not s or not is_internal_specifier(s):
        return None

    stem = normalize_stem(s, from_path)
    if stem is None:
        return None

    for cand in candidate_paths(stem):
        if cand in known_paths:
            return cand
    return None
