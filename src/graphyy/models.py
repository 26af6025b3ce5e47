# graphyy/models.py
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from graphyy.utils import stable_json_dumps

EDGE_ID_SEP = "→"


class FileRecord(BaseModel):
    """One file of a snapshot. `content` is None when it was never fetched or the fetch failed."""

    model_config = ConfigDict(frozen=True)

    path: str
    content: Optional[str] = None
    size: Optional[int] = None


class Node(BaseModel):
    id: str
    label: str
    type: Literal["file", "folder", "external"] = "file"
    path: str
    language: Optional[str] = None
    role: Optional[str] = None
    size: Optional[int] = None


class Edge(BaseModel):
    id: str
    source: str
    target: str
    type: Literal["import", "require", "export"] = "import"

    @classmethod
    def between(cls, source: str, target: str, type: str = "import") -> "Edge":
        return cls(id=f"{source}{EDGE_ID_SEP}{target}", source=source, target=target, type=type)


class TreeNode(BaseModel):
    name: str
    path: str
    type: Literal["file", "dir"]
    children: Optional[list["TreeNode"]] = None
    language: Optional[str] = None

    def iter_leaves(self):
        if self.type == "file":
            yield self
            return
        for child in self.children or []:
            yield from child.iter_leaves()


class Artifact(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    file_tree: TreeNode = Field(alias="fileTree")
    file_roles: dict[str, str] = Field(default_factory=dict, alias="fileRoles")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return stable_json_dumps(self.to_dict())

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> "Artifact":
        return cls.model_validate(obj)


TreeNode.model_rebuild()
