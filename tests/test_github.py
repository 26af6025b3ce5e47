import base64

import httpx
import pytest

from graphyy.content_filter import MAX_CONTENT_BYTES
from graphyy.github import GitHubSnapshotFetcher, SnapshotFetchError, TreeEntry

REPO_JSON = {
    "name": "demo",
    "full_name": "acme/demo",
    "owner": {"login": "acme"},
    "description": "A demo",
    "language": "TypeScript",
    "stargazers_count": 7,
    "forks_count": 2,
    "default_branch": "trunk",
}

TREE_JSON = {
    "truncated": False,
    "tree": [
        {"path": "src", "type": "tree"},
        {"path": "src/a.ts", "type": "blob", "size": 40},
        {"path": "node_modules/x/index.js", "type": "blob", "size": 10},
        {"path": "README.md", "type": "blob", "size": 12},
        {"path": "src/b.ts", "type": "blob", "size": 20},
    ],
}


def _fetcher(handler, **kwargs) -> GitHubSnapshotFetcher:
    transport = httpx.MockTransport(handler)
    return GitHubSnapshotFetcher(
        api_url="https://api.github.test",
        transport=transport,
        async_transport=transport,
        **kwargs,
    )


def test_fetch_repo_info():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json=REPO_JSON)

    info = _fetcher(handler, token="t0k").fetch_repo_info("acme", "demo")
    assert seen == {"path": "/repos/acme/demo", "auth": "Bearer t0k"}
    assert info.full_name == "acme/demo"
    assert info.default_branch == "trunk"


def test_no_token_no_auth_header():
    def handler(request: httpx.Request) -> httpx.Response:
        assert "authorization" not in request.headers
        return httpx.Response(200, json=REPO_JSON)

    _fetcher(handler).fetch_repo_info("acme", "demo")


@pytest.mark.parametrize(
    "status, message",
    [
        (404, "Repository acme/demo not found"),
        (403, "GitHub API rate limit exceeded"),
        (500, "GitHub API error: 500"),
    ],
)
def test_fetch_repo_info_errors(status, message):
    fetcher = _fetcher(lambda request: httpx.Response(status))
    with pytest.raises(SnapshotFetchError) as exc:
        fetcher.fetch_repo_info("acme", "demo")
    assert str(exc.value) == message


def test_list_files_keeps_blobs_and_drops_excluded_dirs():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/acme/demo/git/trees/trunk"
        assert request.url.params["recursive"] == "1"
        return httpx.Response(200, json=TREE_JSON)

    entries = _fetcher(handler).list_files("acme", "demo", "trunk")
    assert entries == [
        TreeEntry("src/a.ts", 40),
        TreeEntry("README.md", 12),
        TreeEntry("src/b.ts", 20),
    ]


def test_list_files_error_is_fatal():
    fetcher = _fetcher(lambda request: httpx.Response(409))
    with pytest.raises(SnapshotFetchError, match="GitHub Tree API error: 409"):
        fetcher.list_files("acme", "demo", "main")


def test_fetch_contents_partial_failure():
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        if request.url.path.endswith("/src/broken.ts"):
            return httpx.Response(500)
        if request.url.path.endswith("/src/empty.ts"):
            return httpx.Response(200, text="")
        return httpx.Response(200, text="import b from './b'\n")

    entries = [
        TreeEntry("src/a.ts", 10),
        TreeEntry("src/broken.ts", 10),
        TreeEntry("README.md", 10),
        TreeEntry("src/huge.ts", MAX_CONTENT_BYTES + 1),
        TreeEntry("src/empty.ts", 0),
    ]
    outcomes = _fetcher(handler).fetch_contents("acme", "demo", entries, concurrency=2)

    assert [o.path for o in outcomes] == [e.path for e in entries]
    a, broken, readme, huge, empty = outcomes
    assert a.content == "import b from './b'\n" and not a.failed
    assert broken.content is None and broken.error == "HTTP 500"
    assert readme.content is None and readme.error is None
    assert huge.content is None and huge.error is None
    assert empty.content is None and not empty.failed

    # ineligible files are never requested
    assert sorted(requested) == [
        "/repos/acme/demo/contents/src/a.ts",
        "/repos/acme/demo/contents/src/broken.ts",
        "/repos/acme/demo/contents/src/empty.ts",
    ]


def test_fetch_contents_transport_error_is_per_file():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/down.ts"):
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, text="x")

    outcomes = _fetcher(handler).fetch_contents(
        "acme", "demo", [TreeEntry("down.ts", 1), TreeEntry("up.ts", 1)]
    )
    assert outcomes[0].error == "ConnectError: connection refused"
    assert outcomes[1].content == "x"


def _contents(text: bytes) -> dict:
    encoded = base64.b64encode(text).decode("ascii")
    # GitHub wraps the base64 payload at 60 columns
    wrapped = "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60))
    return {"type": "file", "encoding": "base64", "size": len(text), "content": wrapped}


def test_fetch_file_decodes_contents():
    code = ("export function cn(...a: string[]) {\n  return a.join(' ')\n}\n" * 4).encode("utf-8")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["accept"] = request.headers.get("accept")
        return httpx.Response(200, json=_contents(code))

    text = _fetcher(handler).fetch_file("acme", "demo", "lib/utils.ts")
    assert text == code.decode("utf-8")
    assert seen == {"path": "/repos/acme/demo/contents/lib/utils.ts", "accept": "application/vnd.github.v3+json"}


@pytest.mark.parametrize(
    "payload, message",
    [
        ([{"type": "file", "path": "lib/a.ts"}], "lib is a directory"),
        ({"type": "file", "encoding": "none", "content": ""}, "lib is a binary or empty file"),
        ({"type": "file", "encoding": "base64", "content": ""}, "lib is a binary or empty file"),
        (
            {"type": "file", "encoding": "base64", "content": base64.b64encode(b"\x89PNG\r\n\x1a\n\xff\xfe").decode()},
            "lib is a binary or empty file",
        ),
    ],
)
def test_fetch_file_rejects_unreadable_paths(payload, message):
    fetcher = _fetcher(lambda request: httpx.Response(200, json=payload))
    with pytest.raises(SnapshotFetchError) as exc:
        fetcher.fetch_file("acme", "demo", "lib")
    assert str(exc.value) == message


def test_fetch_file_missing():
    fetcher = _fetcher(lambda request: httpx.Response(404))
    with pytest.raises(SnapshotFetchError, match=r"File lib/gone.ts not found on GitHub \(HTTP 404\)"):
        fetcher.fetch_file("acme", "demo", "lib/gone.ts")
