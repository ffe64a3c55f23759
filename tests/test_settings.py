from __future__ import annotations

from pathlib import Path

import pytest

from core.utils.settings import load_settings


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "SF_HOST",
        "SF_FIRM_ID",
        "SF_POLL_INITIAL_DELAY_SECONDS",
        "SF_POLL_BACKOFF",
        "SF_POLL_TIMEOUT_SECONDS",
        "SF_REQUEST_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.host == "https://live.getsilverfin.com"
    assert settings.default_firm_id is None
    assert settings.poll_initial_delay_seconds == 1.0
    assert settings.poll_backoff == 1.05
    assert settings.poll_timeout_seconds == 500.0


def test_settings_invalid_values_fall_back(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SF_POLL_BACKOFF", "0.5")
    monkeypatch.setenv("SF_POLL_TIMEOUT_SECONDS", "soon")
    monkeypatch.setenv("SF_REQUEST_TIMEOUT_SECONDS", "-1")
    monkeypatch.setenv("SF_HOST", "https://staging.example.test/")
    monkeypatch.setenv("SF_HTML_EXPORT_DIR", "/tmp/exports")

    settings = load_settings()

    assert settings.poll_backoff == 1.05
    assert settings.poll_timeout_seconds == 500.0
    assert settings.request_timeout_seconds == 30.0
    assert settings.host == "https://staging.example.test"
    assert settings.html_export_dir == Path("/tmp/exports")


def test_firm_token_wins_over_generic_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SF_ACCESS_TOKEN", "generic")
    monkeypatch.setenv("SF_ACCESS_TOKEN_42", "firm")

    settings = load_settings()

    assert settings.token_for("42") == "firm"
    assert settings.token_for("7") == "generic"
