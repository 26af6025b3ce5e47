# graphyy/tree.py
from __future__ import annotations

from typing import Iterable

from graphyy.models import TreeNode
from graphyy.utils import detect_language


def build_file_tree(paths: Iterable[str]) -> TreeNode:
    """
    Nest a flat path list into a directory hierarchy.

    Contract:
    - paths are walked in sorted order, so the result does not depend on input order
    - each directory is synthesized once per path prefix
    - each distinct input path becomes exactly one file leaf
    """
    root = TreeNode(name="/", path="", type="dir", children=[])
    dirs: dict[str, TreeNode] = {"": root}
    files: set[str] = set()

    for file_path in sorted(set(paths)):
        if not file_path or file_path in files:
            continue
        parts = file_path.split("/")

        current = root
        for i, part in enumerate(parts[:-1]):
            dir_path = "/".join(parts[: i + 1])
            node = dirs.get(dir_path)
            if node is None:
                node = TreeNode(name=part, path=dir_path, type="dir", children=[])
                current.children.append(node)
                dirs[dir_path] = node
            current = node

        name = parts[-1]
        current.children.append(
            TreeNode(name=name, path=file_path, type="file", language=detect_language(name))
        )
        files.add(file_path)

    return root
