from __future__ import annotations

from pathlib import Path

import pytest
import structlog

from wildwatch_session.utils import LoggingOptions, bind_session_context


@pytest.fixture(autouse=True)
def _clean_log_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("WILDWATCH_LOG_LEVEL", "WILDWATCH_LOG_DEBUG", "WILDWATCH_LOG_PATH"):
        monkeypatch.delenv(name, raising=False)


def test_from_env_defaults() -> None:
    options = LoggingOptions.from_env()

    assert options.level == "INFO"
    assert not options.debug
    assert options.log_path is None
    assert not options.diagnose


def test_from_env_reads_overrides(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("WILDWATCH_LOG_LEVEL", " warning ")
    monkeypatch.setenv("WILDWATCH_LOG_DEBUG", "yes")
    monkeypatch.setenv("WILDWATCH_LOG_PATH", str(tmp_path / "session.log"))

    options = LoggingOptions.from_env()

    assert options.level == "WARNING"
    assert options.debug
    assert options.log_path == tmp_path / "session.log"


def test_from_env_ignores_unknown_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WILDWATCH_LOG_LEVEL", "chatty")
    monkeypatch.setenv("WILDWATCH_LOG_DEBUG", "0")

    options = LoggingOptions.from_env()

    assert options.level == "INFO"
    assert not options.debug


def test_bind_session_context_tags_and_clears_subject() -> None:
    structlog.contextvars.clear_contextvars()
    try:
        bind_session_context("ranger-9")
        assert structlog.contextvars.get_contextvars() == {"session_subject": "ranger-9"}

        bind_session_context(None)
        assert structlog.contextvars.get_contextvars() == {}
    finally:
        structlog.contextvars.clear_contextvars()
