# graphyy/cli.py
from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from . import __version__
from .artifact import build_artifact
from .config import Settings, load_settings
from .explain import explain_file, explain_repository, explain_snippet
from .github import GitHubSnapshotFetcher
from .job import InvalidRepositoryError
from .logging_config import configure_logging
from .models import FileRecord
from .service import AnalysisService, JobNotFoundError
from .store import JobStore
from .worker import Worker

STAGE_PARSE_ARGS = "parse_args"


class CliInputError(ValueError):
    """Malformed command input (snapshot file, line range). Reported under the parse_args stage."""


def _parse_dotenv_line(line: str) -> tuple[str, str] | None:
    """
    KEY=VALUE, `export KEY=VALUE`, # comments outside quotes, '...' / "..." values.
    No ${VAR} expansion.
    """
    s = line.strip()
    if not s or s.startswith("#"):
        return None

    if s.startswith("export "):
        s = s[len("export "):].lstrip()

    key, sep, rest = s.partition("=")
    key = key.strip()
    if not sep or not key:
        return None

    val = rest.strip()
    if not val:
        return key, ""

    if val[0] in ("'", '"'):
        quote = val[0]
        out: list[str] = []
        escaped = False
        for ch in val[1:]:
            if escaped:
                out.append(ch)
                escaped = False
            elif quote == '"' and ch == "\\":
                escaped = True
            elif ch == quote:
                break
            else:
                out.append(ch)
        return key, "".join(out)

    return key, val.split("#", 1)[0].strip()


def _load_dotenv_file(path: str, *, override: bool = False) -> bool:
    """Returns True if the file existed and was read."""
    p = Path(path)
    if not p.is_file():
        return False

    for raw_line in p.read_text(encoding="utf-8").splitlines():
        parsed = _parse_dotenv_line(raw_line)
        if not parsed:
            continue
        k, v = parsed
        if not override and k in os.environ:
            continue
        os.environ[k] = v
    return True


def _print_success(obj: dict[str, Any]) -> None:
    print(json.dumps({"ok": True, **obj}, separators=(",", ":")), file=sys.stdout)


def _print_failure(stage: str, err: Exception) -> None:
    out = {
        "ok": False,
        "stage": stage,
        "error_code": f"GRAPHYY_FAILED_{stage.upper()}",
        "error_message": str(err) or type(err).__name__,
    }
    print(json.dumps(out, separators=(",", ":")), file=sys.stdout)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="graphyy",
        description="Dependency graphs for GitHub repositories",
    )
    parser.add_argument(
        "--dotenv",
        nargs="?",
        const=".env",
        default=None,
        metavar="PATH",
        help="Optional: load env vars from a local .env file (default: ./.env).",
    )
    parser.add_argument(
        "--dotenv-override",
        action="store_true",
        help="Optional: allow .env values to override already-set environment variables.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"graphyy {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("submit", help="Create a PENDING analysis for a GitHub repository URL.")
    p.add_argument("repo_url")
    p.add_argument("--requested-by", default=None)

    p = sub.add_parser("run", help="Claim and process one analysis in this process.")
    p.add_argument("job_id")

    p = sub.add_parser("poll", help="Print the current status (and artifact, once COMPLETED).")
    p.add_argument("job_id")

    p = sub.add_parser("worker", help="Poll the store for PENDING analyses and process them.")
    p.add_argument("--once", action="store_true", help="Process at most one job, then exit.")

    p = sub.add_parser("analyse", help="Submit, run in the background and wait within a budget.")
    p.add_argument("repo_url")
    p.add_argument("--budget", type=float, default=None, metavar="SECONDS")
    p.add_argument("--requested-by", default=None)

    p = sub.add_parser("build", help="Offline: build an artifact from a JSON list of files.")
    p.add_argument("snapshot", metavar="SNAPSHOT.json")

    p = sub.add_parser("explain", help="LLM explanation of a completed analysis.")
    p.add_argument("job_id")
    p.add_argument("--file", dest="file_path", default=None, metavar="PATH",
                   help="Explain one file of the repository instead of the whole graph.")
    p.add_argument("--source", default=None, metavar="LOCAL",
                   help="Local copy of --file's source code (default: fetched from GitHub).")
    p.add_argument("--lines", default=None, metavar="START-END",
                   help="Explain only these lines of --file (1-based, inclusive).")

    return parser.parse_args(argv)


# -----------------------------
# Commands
# -----------------------------


def _store(settings: Settings) -> JobStore:
    return JobStore.from_url(settings.database_url)


def _parse_line_range(spec: str) -> tuple[int, int]:
    """`START-END` (1-based, inclusive) or a single line number."""
    start_s, sep, end_s = spec.partition("-")
    try:
        start = int(start_s)
        end = int(end_s) if sep else start
    except ValueError:
        raise CliInputError(f"Invalid line range {spec!r}; expected START-END.") from None
    if start < 1 or end < start:
        raise CliInputError(f"Invalid line range {spec!r}; expected START-END.")
    return start, end


def _service(settings: Settings) -> AnalysisService:
    return AnalysisService(
        store=_store(settings),
        fetcher=GitHubSnapshotFetcher.from_settings(settings),
        settings=settings,
    )


def _cmd_build(args: argparse.Namespace) -> int:
    raw = json.loads(Path(args.snapshot).read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise CliInputError("Snapshot must be a JSON list of {path, content?, size?} objects.")
    files = [FileRecord.model_validate(item) for item in raw]
    artifact = build_artifact(files)
    _print_success({"artifact": artifact.to_dict()})
    return 0


def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    outcome = _service(settings).run(args.job_id)
    if not outcome.claimed:
        _print_failure("claim", RuntimeError(outcome.error or f"Analysis {args.job_id} is not PENDING"))
        return 1
    if outcome.error is not None:
        _print_failure(outcome.stage or "unknown", RuntimeError(outcome.error))
        return 1
    _print_success(outcome.result or {})
    return 0


def _cmd_worker(args: argparse.Namespace, settings: Settings) -> int:
    worker = Worker(
        store=_store(settings),
        fetcher=GitHubSnapshotFetcher.from_settings(settings),
        settings=settings,
    )
    if args.once:
        outcome = worker.run_once()
        _print_success({"processed": 0 if outcome is None else 1,
                        "outcome": outcome.to_dict() if outcome is not None else None})
        return 0
    try:
        processed = worker.run_forever()
    except KeyboardInterrupt:
        worker.stop()
        processed = None
    _print_success({"processed": processed})
    return 0


def _cmd_explain(args: argparse.Namespace, settings: Settings) -> int:
    store = _store(settings)
    job = store.get(args.job_id)
    if job is None:
        raise JobNotFoundError(f"Analysis {args.job_id} not found")

    if args.lines and not args.file_path:
        raise CliInputError("--lines needs --file.")

    if args.file_path:
        if args.source:
            code = Path(args.source).read_text(encoding="utf-8", errors="replace")
        else:
            code = GitHubSnapshotFetcher.from_settings(settings).fetch_file(
                job.repo_owner, job.repo_name, args.file_path
            )

        if args.lines:
            start, end = _parse_line_range(args.lines)
            snippet = "\n".join(code.splitlines()[start - 1:end])
            text = explain_snippet(
                args.file_path,
                snippet,
                job.repo_full_name,
                model=settings.llm_model,
                api_key=settings.openai_api_key,
            )
        else:
            text = explain_file(
                args.file_path,
                code,
                job.repo_full_name,
                model=settings.llm_model,
                api_key=settings.openai_api_key,
            )
    else:
        artifact = store.get_artifact(args.job_id)
        if artifact is None:
            raise JobNotFoundError(f"Analysis {args.job_id} has no artifact (status {job.status.value})")
        text = explain_repository(
            artifact,
            job.repo_full_name,
            model=settings.llm_model,
            api_key=settings.openai_api_key,
        )
    _print_success({"job_id": job.id, "explanation": text})
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # Optional local convenience: load .env ONLY if explicitly requested.
    if args.dotenv:
        _load_dotenv_file(str(args.dotenv), override=bool(args.dotenv_override))

    settings = load_settings()
    configure_logging(settings.log_level, json=settings.log_json)

    stage = args.command
    try:
        if args.command == "submit":
            _print_success(_service(settings).submit(args.repo_url, requested_by=args.requested_by))
            return 0
        if args.command == "poll":
            _print_success(_service(settings).poll(args.job_id))
            return 0
        if args.command == "analyse":
            view = _service(settings).analyse_inline(
                args.repo_url,
                requested_by=args.requested_by,
                budget_seconds=args.budget,
            )
            _print_success(view)
            return 0
        if args.command == "run":
            return _cmd_run(args, settings)
        if args.command == "worker":
            return _cmd_worker(args, settings)
        if args.command == "build":
            return _cmd_build(args)
        if args.command == "explain":
            return _cmd_explain(args, settings)

        raise ValueError(f"Unknown command: {args.command}")

    except Exception as e:  # noqa: BLE001 - top-level CLI error handler
        if isinstance(e, (CliInputError, InvalidRepositoryError, json.JSONDecodeError, ValidationError)):
            stage = STAGE_PARSE_ARGS
        _print_failure(stage, e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
