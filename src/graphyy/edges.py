# graphyy/edges.py
from __future__ import annotations

from typing import Sequence

from graphyy.extractors import extract_references
from graphyy.models import Edge, FileRecord
from graphyy.resolver import resolve_reference


def build_edges(files: Sequence[FileRecord]) -> list[Edge]:
    """
    One edge per resolved cross-file reference.

    Contract:
    - files without content contribute no outgoing edges
    - targets are always snapshot paths; externals and misses are dropped silently
    - no self-loops, and a (source, target) pair is emitted at most once (first reference wins)
    """
    known_paths = frozenset(f.path for f in files)
    edges: list[Edge] = []
    seen: set[tuple[str, str]] = set()

    for f in files:
        if not f.content:
            continue
        for ref in extract_references(f.content, f.path):
            target = resolve_reference(ref.specifier, f.path, known_paths)
            if not target or target == f.path:
                continue
            key = (f.path, target)
            if key in seen:
                continue
            seen.add(key)
            edges.append(Edge.between(f.path, target, ref.kind))

    return edges
