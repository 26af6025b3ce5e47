# graphyy/config.py
from __future__ import annotations

import os
from dataclasses import dataclass

from graphyy.content_filter import DEFAULT_MAX_FILES

DEFAULT_DATABASE_URL = "sqlite:///graphyy.db"
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_LLM_MODEL = "gpt-4.1-mini"


def _str_from_env(name: str, default: str | None = None) -> str | None:
    v = os.environ.get(name, "").strip()
    return v if v else default


def _bool_from_env(name: str, default: bool) -> bool:
    v = os.environ.get(name, "").strip()
    if not v:
        return default
    return v not in ("0", "false", "False", "no", "NO", "off", "OFF")


def _int_from_env(name: str, default: int) -> int:
    v = os.environ.get(name, "").strip()
    if not v:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _float_from_env(name: str, default: float) -> float:
    v = os.environ.get(name, "").strip()
    if not v:
        return default
    try:
        return float(v)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL

    # snapshot fetch
    github_api_url: str = DEFAULT_GITHUB_API_URL
    github_token: str | None = None
    http_timeout_seconds: float = 15.0
    max_files: int = DEFAULT_MAX_FILES
    fetch_concurrency: int = 8

    # job lifecycle
    poll_interval_seconds: float = 5.0
    inline_budget_seconds: float = 30.0

    # optional artifact mirror
    s3_bucket: str | None = None
    s3_prefix: str = "graphyy/artifacts"
    aws_region: str | None = None

    # explain
    llm_model: str = DEFAULT_LLM_MODEL
    openai_api_key: str | None = None

    # logging
    log_level: str = "INFO"
    log_json: bool = True


def load_settings() -> Settings:
    """
    Snapshot of the environment. Read once per process entrypoint and passed
    down; modules never consult os.environ themselves.
    """
    return Settings(
        database_url=_str_from_env("GRAPHYY_DATABASE_URL", DEFAULT_DATABASE_URL),
        github_api_url=_str_from_env("GRAPHYY_GITHUB_API_URL", DEFAULT_GITHUB_API_URL),
        github_token=_str_from_env("GITHUB_TOKEN"),
        http_timeout_seconds=_float_from_env("GRAPHYY_HTTP_TIMEOUT_SECONDS", 15.0),
        max_files=_int_from_env("GRAPHYY_MAX_FILES", DEFAULT_MAX_FILES),
        fetch_concurrency=max(1, _int_from_env("GRAPHYY_FETCH_CONCURRENCY", 8)),
        poll_interval_seconds=_float_from_env("GRAPHYY_POLL_INTERVAL_SECONDS", 5.0),
        inline_budget_seconds=_float_from_env("GRAPHYY_INLINE_BUDGET_SECONDS", 30.0),
        s3_bucket=_str_from_env("GRAPHYY_S3_BUCKET"),
        s3_prefix=_str_from_env("GRAPHYY_S3_PREFIX", "graphyy/artifacts"),
        aws_region=_str_from_env("AWS_REGION") or _str_from_env("AWS_DEFAULT_REGION"),
        llm_model=_str_from_env("GRAPHYY_LLM_MODEL", DEFAULT_LLM_MODEL),
        openai_api_key=_str_from_env("OPENAI_API_KEY"),
        log_level=(_str_from_env("GRAPHYY_LOG_LEVEL", "INFO") or "INFO").upper(),
        log_json=_bool_from_env("GRAPHYY_LOG_JSON", True),
    )
