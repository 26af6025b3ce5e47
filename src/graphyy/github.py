# graphyy/github.py
"""
Snapshot fetcher backed by the GitHub REST API.

Two failure classes, handled differently by the pipeline:
- repository metadata / file list unavailable -> SnapshotFetchError (fatal for the job)
- a single file's content unavailable -> FetchOutcome.error (file kept, no content)
"""
from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass
from typing import Any, Protocol, Sequence
from urllib.parse import quote

import httpx
import structlog

from graphyy import __version__
from graphyy.config import DEFAULT_GITHUB_API_URL, Settings
from graphyy.content_filter import is_excluded_path, should_fetch_content

logger = structlog.get_logger(__name__)

ACCEPT_JSON = "application/vnd.github.v3+json"
ACCEPT_RAW = "application/vnd.github.v3.raw"


class SnapshotFetchError(RuntimeError):
    pass


@dataclass(frozen=True)
class RepoInfo:
    owner: str
    name: str
    full_name: str
    default_branch: str = "main"


@dataclass(frozen=True)
class TreeEntry:
    path: str
    size: int | None = None


@dataclass(frozen=True)
class FetchOutcome:
    path: str
    size: int | None = None
    content: str | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class SnapshotFetcher(Protocol):
    def fetch_repo_info(self, owner: str, name: str) -> RepoInfo: ...

    def list_files(self, owner: str, name: str, ref: str) -> list[TreeEntry]: ...

    def fetch_contents(
            self, owner: str, name: str, entries: Sequence[TreeEntry], *, concurrency: int
    ) -> list[FetchOutcome]: ...


def _headers(token: str | None, accept: str) -> dict[str, str]:
    headers = {"Accept": accept, "User-Agent": f"graphyy/{__version__}"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _repo_info_from_json(data: dict[str, Any], owner: str, name: str) -> RepoInfo:
    owner_obj = data.get("owner") if isinstance(data.get("owner"), dict) else {}
    return RepoInfo(
        owner=str(owner_obj.get("login") or owner),
        name=str(data.get("name") or name),
        full_name=str(data.get("full_name") or f"{owner}/{name}"),
        default_branch=str(data.get("default_branch") or "main"),
    )


class GitHubSnapshotFetcher:
    def __init__(
            self,
            *,
            api_url: str = DEFAULT_GITHUB_API_URL,
            token: str | None = None,
            timeout: float = 15.0,
            transport: httpx.BaseTransport | None = None,
            async_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._async_transport = async_transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "GitHubSnapshotFetcher":
        return cls(
            api_url=settings.github_api_url,
            token=settings.github_token,
            timeout=settings.http_timeout_seconds,
        )

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.api_url,
            headers=_headers(self.token, ACCEPT_JSON),
            timeout=self.timeout,
            transport=self._transport,
        )

    # -----------------------------
    # Top-level (fatal on failure)
    # -----------------------------

    def fetch_repo_info(self, owner: str, name: str) -> RepoInfo:
        try:
            with self._client() as client:
                res = client.get(f"/repos/{owner}/{name}")
        except httpx.HTTPError as e:
            raise SnapshotFetchError(f"GitHub API request failed: {e}") from e

        if res.status_code == 404:
            raise SnapshotFetchError(f"Repository {owner}/{name} not found")
        if res.status_code == 403:
            raise SnapshotFetchError("GitHub API rate limit exceeded")
        if not res.is_success:
            raise SnapshotFetchError(f"GitHub API error: {res.status_code}")

        data = res.json()
        if not isinstance(data, dict):
            raise SnapshotFetchError("GitHub API returned an unexpected repository payload")
        return _repo_info_from_json(data, owner, name)

    def list_files(self, owner: str, name: str, ref: str) -> list[TreeEntry]:
        """Every blob of the recursive tree at `ref`, excluded directories removed, API order kept."""
        try:
            with self._client() as client:
                res = client.get(
                    f"/repos/{owner}/{name}/git/trees/{quote(ref, safe='')}",
                    params={"recursive": "1"},
                )
        except httpx.HTTPError as e:
            raise SnapshotFetchError(f"GitHub Tree API request failed: {e}") from e

        if not res.is_success:
            raise SnapshotFetchError(f"GitHub Tree API error: {res.status_code}")

        data = res.json()
        tree = data.get("tree") if isinstance(data, dict) else None
        if not isinstance(tree, list):
            raise SnapshotFetchError("GitHub Tree API returned no tree")
        if data.get("truncated"):
            logger.warning("github_tree_truncated", repo=f"{owner}/{name}", ref=ref, entries=len(tree))

        out: list[TreeEntry] = []
        for item in tree:
            if not isinstance(item, dict) or item.get("type") != "blob":
                continue
            path = item.get("path")
            if not isinstance(path, str) or not path or is_excluded_path(path):
                continue
            size = item.get("size")
            out.append(TreeEntry(path=path, size=int(size) if isinstance(size, int) else None))
        return out

    def fetch_file(self, owner: str, name: str, path: str) -> str:
        """
        Contract:
        - one file's text via the contents API (base64 payload, decoded as UTF-8)
        - a directory, a binary file or an empty file raises SnapshotFetchError
        """
        try:
            with self._client() as client:
                res = client.get(f"/repos/{owner}/{name}/contents/{quote(path)}")
        except httpx.HTTPError as e:
            raise SnapshotFetchError(f"GitHub API request failed: {e}") from e

        if not res.is_success:
            raise SnapshotFetchError(f"File {path} not found on GitHub (HTTP {res.status_code})")

        data = res.json()
        if isinstance(data, list):
            raise SnapshotFetchError(f"{path} is a directory")
        if not isinstance(data, dict) or data.get("encoding") != "base64" or not data.get("content"):
            raise SnapshotFetchError(f"{path} is a binary or empty file")

        try:
            raw = base64.b64decode(str(data["content"]).replace("\n", ""))
            text = raw.decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise SnapshotFetchError(f"{path} is a binary or empty file") from e
        if not text:
            raise SnapshotFetchError(f"{path} is a binary or empty file")
        return text

    # -----------------------------
    # Per-file content (never fatal)
    # -----------------------------

    def fetch_contents(
            self, owner: str, name: str, entries: Sequence[TreeEntry], *, concurrency: int = 8
    ) -> list[FetchOutcome]:
        """
        Contract:
        - one outcome per entry, same order as `entries`
        - ineligible entries (content filter) are not requested: content=None, error=None
        - a failed fetch degrades to content=None with the error recorded; siblings keep going
        - at most `concurrency` requests in flight
        """
        return asyncio.run(self._fetch_contents_async(owner, name, entries, concurrency=concurrency))

    async def _fetch_contents_async(
            self, owner: str, name: str, entries: Sequence[TreeEntry], *, concurrency: int
    ) -> list[FetchOutcome]:
        sem = asyncio.Semaphore(max(1, concurrency))

        async with httpx.AsyncClient(
                base_url=self.api_url,
                headers=_headers(self.token, ACCEPT_RAW),
                timeout=self.timeout,
                transport=self._async_transport,
        ) as client:

            async def one(entry: TreeEntry) -> FetchOutcome:
                if not should_fetch_content(entry.path, entry.size):
                    return FetchOutcome(path=entry.path, size=entry.size)
                async with sem:
                    try:
                        res = await client.get(f"/repos/{owner}/{name}/contents/{quote(entry.path)}")
                    except httpx.HTTPError as e:
                        return FetchOutcome(path=entry.path, size=entry.size, error=f"{type(e).__name__}: {e}")
                if not res.is_success:
                    return FetchOutcome(path=entry.path, size=entry.size, error=f"HTTP {res.status_code}")
                return FetchOutcome(path=entry.path, size=entry.size, content=res.text or None)

            return list(await asyncio.gather(*(one(e) for e in entries)))
