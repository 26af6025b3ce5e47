# graphyy/explain.py
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

import structlog

from graphyy.models import Artifact

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an expert code analyst. Explain code clearly and concisely for developers. "
    "Use markdown with ## headers and **bold** for emphasis and `backticks` for code references. "
    "Be direct, insightful, and practical."
)

MAX_OUTPUT_TOKENS = 1024
MAX_FILE_CHARS = 8000
MAX_SNIPPET_CHARS = 3000

# Roles that mark where a request enters the app.
ENTRY_ROLE_PREFIXES = ("Page", "Layout", "API Route")


class ExplainError(RuntimeError):
    pass


@dataclass(frozen=True)
class ArtifactSummary:
    file_count: int
    edge_count: int
    primary_language: str | None
    hubs: list[tuple[str, int]] = field(default_factory=list)  # (path, in-degree)
    entries: list[str] = field(default_factory=list)
    roles: dict[str, int] = field(default_factory=dict)  # role label -> file count


def summarize_artifact(artifact: Artifact, *, top_n: int = 5) -> ArtifactSummary:
    """Deterministic facts about an artifact; the prompt is built only from these."""
    in_degree: Counter[str] = Counter(e.target for e in artifact.edges)
    hubs = sorted(in_degree.items(), key=lambda kv: (-kv[1], kv[0]))[:top_n]

    langs: Counter[str] = Counter(n.language for n in artifact.nodes if n.language)
    primary = sorted(langs.items(), key=lambda kv: (-kv[1], kv[0]))[0][0] if langs else None

    entries = sorted(
        path for path, role in artifact.file_roles.items() if role.startswith(ENTRY_ROLE_PREFIXES)
    )[:top_n]

    role_counts: Counter[str] = Counter(artifact.file_roles.values())
    roles = {k: role_counts[k] for k in sorted(role_counts)}

    return ArtifactSummary(
        file_count=len(artifact.nodes),
        edge_count=len(artifact.edges),
        primary_language=primary,
        hubs=hubs,
        entries=entries,
        roles=roles,
    )


def build_repository_prompt(summary: ArtifactSummary, repo_full_name: str) -> str:
    hubs = ", ".join(f"{p} ({n})" for p, n in summary.hubs) or "none"
    entries = ", ".join(summary.entries) or "none"
    roles = "\n".join(f"- {role}: {n}" for role, n in summary.roles.items()) or "no role data"
    return (
        f"Analyze the dependency graph of **{repo_full_name}**:\n\n"
        "Repository stats:\n"
        f"- {summary.file_count} source files analyzed\n"
        f"- {summary.edge_count} dependency relationships\n"
        f"- Primary language: {summary.primary_language or 'unknown'}\n"
        f"- Most imported files: {hubs}\n"
        f"- Entry points: {entries}\n\n"
        "File roles detected:\n"
        f"{roles}\n\n"
        "Provide a structured codebase analysis:\n\n"
        "## Project Overview\nWhat kind of project is this and what does it do?\n\n"
        "## Architecture\nHow is the codebase structured? (MVC, layered, modular, etc.)\n\n"
        "## Core Modules\nThe 3-5 most important files and their purpose.\n\n"
        "## Data Flow\nHow does data move through the system?\n\n"
        "## Quality Notes\nObservations about code organization, patterns, and health."
    )


def build_file_prompt(file_path: str, code: str, repo_full_name: str) -> str:
    return (
        f"Analyze this file `{file_path}` from `{repo_full_name}`:\n\n"
        f"```\n{(code or '')[:MAX_FILE_CHARS]}\n```\n\n"
        "Provide a structured analysis:\n\n"
        "## Purpose\nWhat this file does and its role in the codebase.\n\n"
        "## Key Exports\nThe most important functions, classes, or components exported.\n\n"
        "## Architecture\nDesign patterns and paradigms used.\n\n"
        "## Dependencies\nWhy it imports what it does and what each dependency contributes.\n\n"
        "## Concerns\nAny TODOs, potential issues, or improvement opportunities."
    )


def build_snippet_prompt(file_path: str, snippet: str, repo_full_name: str) -> str:
    return (
        f"Explain this code snippet from `{file_path}` ({repo_full_name}):\n\n"
        f"```\n{(snippet or '')[:MAX_SNIPPET_CHARS]}\n```\n\n"
        "Provide:\n\n"
        "## What It Does\nClear explanation in 1-2 sentences.\n\n"
        "## How It Works\nKey logic explained step by step.\n\n"
        "## Pattern\nDesign pattern or technique used.\n\n"
        "## Notes\nAny gotchas, edge cases, or important considerations."
    )


# -------------------------------------------------------------------
# OpenAI Responses API (plain text)
# -------------------------------------------------------------------


def _extract_text_from_responses_obj(resp: Any) -> str:
    t = getattr(resp, "output_text", None)
    if isinstance(t, str) and t.strip():
        return t

    out = getattr(resp, "output", None)
    if not isinstance(out, list):
        return ""

    chunks: list[str] = []
    for item in out:
        item_content = item.get("content") if isinstance(item, dict) else getattr(item, "content", None)
        if not isinstance(item_content, list):
            continue
        for c in item_content:
            c_text = c.get("text") if isinstance(c, dict) else getattr(c, "text", None)
            if isinstance(c_text, str) and c_text:
                chunks.append(c_text)
    return "".join(chunks)


def _openai_client(api_key: str | None) -> Any:
    if not api_key:
        raise ExplainError("OPENAI_API_KEY is not set; cannot generate explanations.")
    try:
        from openai import OpenAI  # type: ignore
    except Exception as e:
        raise ExplainError(f"openai python SDK not available: {e}") from e
    return OpenAI(api_key=api_key)


def _complete(client: Any, *, prompt: str, model: str) -> str:
    try:
        resp = client.responses.create(
            model=model,
            input=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_output_tokens=MAX_OUTPUT_TOKENS,
        )
    except Exception as e:
        raise ExplainError(f"OpenAI Responses API call failed: {e}") from e

    text = _extract_text_from_responses_obj(resp).strip()
    if not text:
        raise ExplainError("OpenAI response was empty.")
    return text


def explain_repository(
        artifact: Artifact,
        repo_full_name: str,
        *,
        model: str,
        client: Any = None,
        api_key: str | None = None,
) -> str:
    client = client if client is not None else _openai_client(api_key)
    summary = summarize_artifact(artifact)
    logger.info("explain_repository", repo=repo_full_name, files=summary.file_count, edges=summary.edge_count)
    return _complete(client, prompt=build_repository_prompt(summary, repo_full_name), model=model)


def explain_file(
        file_path: str,
        code: str,
        repo_full_name: str,
        *,
        model: str,
        client: Any = None,
        api_key: str | None = None,
) -> str:
    client = client if client is not None else _openai_client(api_key)
    return _complete(client, prompt=build_file_prompt(file_path, code, repo_full_name), model=model)


def explain_snippet(
        file_path: str,
        snippet: str,
        repo_full_name: str,
        *,
        model: str,
        client: Any = None,
        api_key: str | None = None,
) -> str:
    client = client if client is not None else _openai_client(api_key)
    return _complete(client, prompt=build_snippet_prompt(file_path, snippet, repo_full_name), model=model)
