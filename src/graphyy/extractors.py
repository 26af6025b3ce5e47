# graphyy/extractors.py
"""
Reference extraction: raw import/require/re-export specifiers per file.

Every extractor here is a set of regular expressions, not a parser. Patterns
match inside comments and string literals, miss multi-line import bindings,
and know nothing about build configuration. That is accepted: the graph is a
best-effort picture across many languages, and callers rely on the exact
matching behavior below, false positives included.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from graphyy.utils import path_ext

ReferenceKind = Literal["import", "require", "export"]

# Anything carrying a URL scheme ("https://", "git+ssh://") is never intra-repository.
_URL_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")

JS_IMPORT_FROM_RE = re.compile(r"""import\s+(?:.*?)\s+from\s+['"](.+?)['"]""", re.M)
JS_REQUIRE_RE = re.compile(r"""require\(['"](.+?)['"]\)""", re.M)
JS_EXPORT_FROM_RE = re.compile(r"""export\s+(?:.*?)\s+from\s+['"](.+?)['"]""", re.M)

PY_FROM_IMPORT_RE = re.compile(r"^from\s+(\S+)\s+import", re.M)
PY_IMPORT_RE = re.compile(r"^import\s+(\S+)", re.M)


@dataclass(frozen=True)
class Reference:
    specifier: str
    kind: ReferenceKind


class ReferenceExtractor:
    """
    Ordered (kind, pattern) pairs. Group 1 of each pattern is the specifier.

    Matches are gathered pattern by pattern, then in text order; the first
    occurrence of a specifier fixes its position and kind.
    """

    patterns: tuple[tuple[ReferenceKind, re.Pattern[str]], ...] = ()

    def extract(self, text: str | None) -> list[Reference]:
        if not text:
            return []

        seen: set[str] = set()
        out: list[Reference] = []
        for kind, rx in self.patterns:
            for m in rx.finditer(text):
                spec = m.group(1)
                if not spec or spec in seen:
                    continue
                if _URL_SCHEME_RE.match(spec):
                    continue
                seen.add(spec)
                out.append(Reference(specifier=spec, kind=kind))
        return out


class ScriptExtractor(ReferenceExtractor):
    patterns = (
        ("import", JS_IMPORT_FROM_RE),
        ("require", JS_REQUIRE_RE),
    )


class TypeScriptExtractor(ReferenceExtractor):
    patterns = (
        ("import", JS_IMPORT_FROM_RE),
        ("require", JS_REQUIRE_RE),
        ("export", JS_EXPORT_FROM_RE),
    )


class PythonExtractor(ReferenceExtractor):
    patterns = (
        ("import", PY_FROM_IMPORT_RE),
        ("import", PY_IMPORT_RE),
    )


# -----------------------------
# Registry (keyed on file extension)
# -----------------------------

DEFAULT_EXTRACTOR: ReferenceExtractor = ScriptExtractor()

_REGISTRY: dict[str, ReferenceExtractor] = {
    "ts": TypeScriptExtractor(),
    "tsx": DEFAULT_EXTRACTOR,
    "js": DEFAULT_EXTRACTOR,
    "jsx": DEFAULT_EXTRACTOR,
    "py": PythonExtractor(),
}


def register_extractor(ext: str, extractor: ReferenceExtractor) -> None:
    _REGISTRY[ext.lower().lstrip(".")] = extractor


def extractor_for(path: str) -> ReferenceExtractor:
    return _REGISTRY.get(path_ext(path), DEFAULT_EXTRACTOR)


def extract_references(text: str | None, path: str) -> list[Reference]:
    return extractor_for(path).extract(text)


def extract_specifiers(text: str | None, path: str) -> list[str]:
    return [r.specifier for r in extract_references(text, path)]
