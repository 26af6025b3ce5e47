# graphyy/artifact.py
from __future__ import annotations

from typing import Iterable, Sequence

from graphyy.edges import build_edges
from graphyy.models import Artifact, FileRecord, Node
from graphyy.roles import classify_role
from graphyy.tree import build_file_tree
from graphyy.utils import basename, detect_language


def build_nodes(files: Sequence[FileRecord]) -> list[Node]:
    return [
        Node(
            id=f.path,
            label=basename(f.path) or f.path,
            type="file",
            path=f.path,
            language=detect_language(f.path),
            role=classify_role(f.path),
            size=f.size,
        )
        for f in files
    ]


def build_artifact(files: Iterable[FileRecord]) -> Artifact:
    """
    Snapshot -> graph artifact (nodes, edges, file tree, roles).

    Pure and deterministic: the same FileRecord list always yields the same
    Artifact, and Artifact.to_json() the same bytes.
    """
    records = list(files)
    return Artifact(
        nodes=build_nodes(records),
        edges=build_edges(records),
        file_tree=build_file_tree(f.path for f in records),
        file_roles={f.path: classify_role(f.path) for f in records},
    )
