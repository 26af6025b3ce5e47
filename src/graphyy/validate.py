# graphyy/validate.py
from __future__ import annotations

from collections import Counter
from typing import Iterable

from graphyy.models import Artifact


class ArtifactValidationError(RuntimeError):
    pass


def _dupes(items: Iterable[str]) -> list[str]:
    return sorted(k for k, n in Counter(items).items() if n > 1)


def validate_artifact(artifact: Artifact, paths: Iterable[str]) -> None:
    """
    Structural sanity checks run before an artifact is persisted:
    - node ids are exactly the snapshot paths, each once
    - edges: no self-loops, no dangling targets/sources, no repeated (source, target)
    - tree: root is a dir and its leaves are exactly the snapshot paths
    - fileRoles covers exactly the snapshot paths
    """
    path_set = set(paths)

    node_ids = [n.id for n in artifact.nodes]
    dup_nodes = _dupes(node_ids)
    if dup_nodes:
        raise ArtifactValidationError(f"Duplicate node ids: {dup_nodes[:10]}")
    if set(node_ids) != path_set:
        missing = sorted(path_set - set(node_ids))
        extra = sorted(set(node_ids) - path_set)
        raise ArtifactValidationError(f"Node ids do not match snapshot paths. Missing: {missing[:10]} Extra: {extra[:10]}")

    pairs: set[tuple[str, str]] = set()
    for e in artifact.edges:
        if e.source == e.target:
            raise ArtifactValidationError(f"Self-referencing edge: {e.id}")
        if e.source not in path_set or e.target not in path_set:
            raise ArtifactValidationError(f"Dangling edge: {e.id}")
        key = (e.source, e.target)
        if key in pairs:
            raise ArtifactValidationError(f"Duplicate edge: {e.id}")
        pairs.add(key)

    if artifact.file_tree.type != "dir":
        raise ArtifactValidationError("File tree root must be a dir")
    leaves = [leaf.path for leaf in artifact.file_tree.iter_leaves()]
    dup_leaves = _dupes(leaves)
    if dup_leaves:
        raise ArtifactValidationError(f"Duplicate tree leaves: {dup_leaves[:10]}")
    if set(leaves) != path_set:
        raise ArtifactValidationError("File tree leaves do not match snapshot paths")

    if set(artifact.file_roles) != path_set:
        raise ArtifactValidationError("fileRoles keys do not match snapshot paths")
