# graphyy/roles.py
from __future__ import annotations

import re

from graphyy.utils import path_ext

# Ordered; first match wins. Searched against the full repo path.
ROLE_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"layout\.(tsx?|jsx?)$"), "Layout — Wraps all pages in this route segment"),
    (re.compile(r"page\.(tsx?|jsx?)$"), "Page — Renders the route UI"),
    (re.compile(r"route\.(tsx?|ts)$"), "API Route — Handles HTTP requests"),
    (re.compile(r"middleware\.(tsx?|ts)$"), "Middleware — Intercepts requests"),
    (re.compile(r"schema\.prisma$"), "Database Schema — Defines all data models"),
    (re.compile(r"\.(test|spec)\.(tsx?|jsx?|py)$"), "Test — Unit or integration tests"),
    (re.compile(r"index\.(tsx?|jsx?|py)$"), "Module index — Entry point for this directory"),
    (re.compile(r"hooks?\.(tsx?|ts)$"), "Custom hook — Reusable React logic"),
    (re.compile(r"context\.(tsx?|ts)$"), "React Context — Shared state provider"),
    (re.compile(r"store\.(tsx?|ts)$"), "State store — Application state management"),
    (re.compile(r"config\.(tsx?|ts|js)$"), "Configuration — App or tool settings"),
    (re.compile(r"types?\.(tsx?|ts)$"), "Type definitions — TypeScript interfaces"),
    (re.compile(r"utils?\.(tsx?|ts|js)$"), "Utilities — Helper functions"),
    (re.compile(r"constants?\.(tsx?|ts|js)$"), "Constants — Shared constant values"),
    (re.compile(r"providers?\.(tsx?|ts)$"), "Provider — Wraps app with context"),
    (re.compile(r"README\.md$", re.I), "Documentation — Project readme"),
    (re.compile(r"package\.json$"), "Package manifest — Dependencies and scripts"),
    (re.compile(r"\.env"), "Environment config — Runtime variables"),
]

MODULE_ROLE = "Module — A JavaScript/TypeScript module"
FILE_ROLE = "File"

_MODULE_EXTS = frozenset({"ts", "tsx", "js", "jsx"})


def classify_role(path: str) -> str:
    for rx, role in ROLE_RULES:
        if rx.search(path):
            return role
    if path_ext(path) in _MODULE_EXTS:
        return MODULE_ROLE
    return FILE_ROLE
