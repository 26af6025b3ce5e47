# graphyy/job.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict


class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class InvalidRepositoryError(ValueError):
    pass


class Job(BaseModel):
    """
    One analysis request.

    Created PENDING at submission; only the pipeline moves it forward.
    Jobs are never deleted here.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    repo_owner: str
    repo_name: str
    repo_url: str
    status: JobStatus = JobStatus.PENDING
    error: Optional[str] = None
    requested_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def repo_full_name(self) -> str:
        return f"{self.repo_owner}/{self.repo_name}"


def parse_github_url(url: str) -> tuple[str, str] | None:
    """
    "https://github.com/vercel/next.js.git" -> ("vercel", "next.js")

    Extra path segments (tree/main/...) are ignored. Anything that is not a
    github.com URL with an owner and a name yields None.
    """
    try:
        u = urlparse((url or "").strip())
    except ValueError:
        return None
    if u.scheme not in ("http", "https") or u.hostname != "github.com":
        return None

    parts = u.path.lstrip("/").split("/")
    if len(parts) < 2:
        return None
    owner, name = parts[0], parts[1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not owner or not name:
        return None
    return owner, name


def require_github_repo(url: str) -> tuple[str, str]:
    parsed = parse_github_url(url)
    if parsed is None:
        raise InvalidRepositoryError(f"Invalid GitHub repository URL: {url!r}")
    return parsed
