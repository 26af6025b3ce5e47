from dataclasses import dataclass

from graphyy.content_filter import (
    MAX_CONTENT_BYTES,
    is_excluded_path,
    select_snapshot_files,
    should_fetch_content,
)


@dataclass
class Entry:
    path: str


def test_source_extensions_are_fetched():
    for path in ("app/page.tsx", "lib/utils.ts", "src/main.py", "cmd/main.go", "index.js"):
        assert should_fetch_content(path)


def test_non_source_files_are_not_fetched():
    for path in ("README.md", "package.json", "public/icon.png", "styles/global.css", "Makefile"):
        assert not should_fetch_content(path)


def test_extension_check_is_case_insensitive():
    assert should_fetch_content("src/App.TSX")


def test_oversized_files_are_not_fetched():
    assert should_fetch_content("a.ts", MAX_CONTENT_BYTES)
    assert not should_fetch_content("a.ts", MAX_CONTENT_BYTES + 1)


def test_unknown_size_is_not_a_reason_to_skip():
    assert should_fetch_content("a.ts", None)


def test_excluded_directories_match_whole_segments():
    assert is_excluded_path("node_modules/react/index.js")
    assert is_excluded_path("packages/web/.next/server/page.js")
    assert is_excluded_path("pkg/__pycache__/mod.cpython-312.pyc")
    assert not is_excluded_path("src/distance.ts")
    assert not is_excluded_path("src/builder/index.ts")


def test_excluded_name_as_file_is_kept():
    # only directories are excluded
    assert not is_excluded_path("scripts/build")


def test_select_excludes_before_capping_and_keeps_order():
    entries = [Entry("node_modules/x.js"), Entry("b.ts"), Entry("dist/out.js"), Entry("a.ts"), Entry("c.ts")]
    selected = select_snapshot_files(entries, max_files=2)
    assert [e.path for e in selected] == ["b.ts", "a.ts"]


def test_select_with_zero_cap_is_empty():
    assert select_snapshot_files([Entry("a.ts")], max_files=0) == []
