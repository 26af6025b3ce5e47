from __future__ import annotations

from typing import Sequence

import pytest

from graphyy.config import Settings
from graphyy.content_filter import should_fetch_content
from graphyy.github import FetchOutcome, RepoInfo, SnapshotFetchError, TreeEntry
from graphyy.store import JobStore

REPO_URL = "https://github.com/acme/demo"

DEMO_FILES = {
    "app/page.tsx": "import { Hero } from '@/components/Hero'\n",
    "components/Hero.tsx": "import { cn } from '@/lib/utils'\nimport React from 'react'\n",
    "lib/utils.ts": "export const cn = (...a) => a.join(' ')\n",
    "README.md": "# demo\n",
}


class FakeFetcher:
    """In-memory SnapshotFetcher: `files` maps path -> content; `broken` paths fail per file."""

    def __init__(self, files=None, *, broken=(), repo_error: str | None = None):
        self.files = dict(DEMO_FILES if files is None else files)
        self.broken = set(broken)
        self.repo_error = repo_error
        self.calls: list[str] = []

    def fetch_repo_info(self, owner: str, name: str) -> RepoInfo:
        self.calls.append("fetch_repo_info")
        if self.repo_error:
            raise SnapshotFetchError(self.repo_error)
        return RepoInfo(owner=owner, name=name, full_name=f"{owner}/{name}", default_branch="main")

    def list_files(self, owner: str, name: str, ref: str) -> list[TreeEntry]:
        self.calls.append("list_files")
        return [TreeEntry(path=p, size=len(c)) for p, c in self.files.items()]

    def fetch_contents(
            self, owner: str, name: str, entries: Sequence[TreeEntry], *, concurrency: int = 8
    ) -> list[FetchOutcome]:
        self.calls.append("fetch_contents")
        out = []
        for e in entries:
            if e.path in self.broken:
                out.append(FetchOutcome(path=e.path, size=e.size, error="HTTP 500"))
            elif should_fetch_content(e.path, e.size):
                out.append(FetchOutcome(path=e.path, size=e.size, content=self.files[e.path]))
            else:
                out.append(FetchOutcome(path=e.path, size=e.size))
        return out


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="sqlite://", poll_interval_seconds=0.01, inline_budget_seconds=5.0)


@pytest.fixture
def store(tmp_path) -> JobStore:
    return JobStore.from_url(f"sqlite:///{tmp_path / 'graphyy.db'}")


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()
