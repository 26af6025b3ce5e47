import io
import json

import structlog

from graphyy.cli import _parse_dotenv_line
from graphyy.config import DEFAULT_DATABASE_URL, load_settings
from graphyy.logging_config import configure_logging


def test_defaults(monkeypatch):
    for name in ("GRAPHYY_DATABASE_URL", "GRAPHYY_MAX_FILES", "GRAPHYY_LOG_JSON", "GITHUB_TOKEN", "GRAPHYY_S3_BUCKET"):
        monkeypatch.delenv(name, raising=False)
    s = load_settings()
    assert s.database_url == DEFAULT_DATABASE_URL
    assert s.max_files == 200
    assert s.poll_interval_seconds == 5.0
    assert s.log_json is True
    assert s.github_token is None
    assert s.s3_bucket is None


def test_overrides_and_bad_values(monkeypatch):
    monkeypatch.setenv("GRAPHYY_MAX_FILES", "50")
    monkeypatch.setenv("GRAPHYY_FETCH_CONCURRENCY", "0")
    monkeypatch.setenv("GRAPHYY_INLINE_BUDGET_SECONDS", "soon")
    monkeypatch.setenv("GRAPHYY_LOG_JSON", "off")
    monkeypatch.setenv("GRAPHYY_LOG_LEVEL", "debug")
    s = load_settings()
    assert s.max_files == 50
    assert s.fetch_concurrency == 1
    assert s.inline_budget_seconds == 30.0
    assert s.log_json is False
    assert s.log_level == "DEBUG"


def test_dotenv_lines():
    assert _parse_dotenv_line("# comment") is None
    assert _parse_dotenv_line("no_equals") is None
    assert _parse_dotenv_line("A=1 # trailing") == ("A", "1")
    assert _parse_dotenv_line("export B='x # y'") == ("B", "x # y")
    assert _parse_dotenv_line('C="a\\"b"') == ("C", 'a"b')
    assert _parse_dotenv_line("D=") == ("D", "")


def test_json_logs_filter_credentials():
    stream = io.StringIO()
    configure_logging("INFO", json=True, stream=stream)
    structlog.get_logger("graphyy.test").info("fetching", repo="acme/demo", token="secret")

    event = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert event["event"] == "fetching"
    assert event["repo"] == "acme/demo"
    assert event["token"] == "[FILTERED]"
    assert event["level"] == "info"
