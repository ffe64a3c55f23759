"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

_DEFAULT_HOST = "https://live.getsilverfin.com"
_DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
_DEFAULT_POLL_INITIAL_DELAY_SECONDS = 1.0
_DEFAULT_POLL_BACKOFF = 1.05
_DEFAULT_POLL_TIMEOUT_SECONDS = 500.0
_DEFAULT_HTML_EXPORT_DIR = Path.home() / ".silverfin" / "html_exports"

_TOKEN_ENV = "SF_ACCESS_TOKEN"


@dataclass(frozen=True)
class Settings:
    """Resolved settings for one CLI invocation."""

    host: str = _DEFAULT_HOST
    default_firm_id: str | None = None
    request_timeout_seconds: float = _DEFAULT_REQUEST_TIMEOUT_SECONDS
    poll_initial_delay_seconds: float = _DEFAULT_POLL_INITIAL_DELAY_SECONDS
    poll_backoff: float = _DEFAULT_POLL_BACKOFF
    poll_timeout_seconds: float = _DEFAULT_POLL_TIMEOUT_SECONDS
    html_export_dir: Path = _DEFAULT_HTML_EXPORT_DIR
    tokens: dict[str, str] = field(default_factory=dict)

    def token_for(self, firm_id: str) -> str | None:
        """Return firm-specific token, falling back to the generic one."""

        return self.tokens.get(str(firm_id)) or self.tokens.get("")


def load_settings() -> Settings:
    """Read settings from environment variables."""

    host = os.getenv("SF_HOST", "").strip().rstrip("/") or _DEFAULT_HOST
    firm_id = os.getenv("SF_FIRM_ID", "").strip() or None
    export_dir_raw = os.getenv("SF_HTML_EXPORT_DIR", "").strip()
    export_dir = Path(export_dir_raw).expanduser() if export_dir_raw else _DEFAULT_HTML_EXPORT_DIR

    return Settings(
        host=host,
        default_firm_id=firm_id,
        request_timeout_seconds=_positive_float(
            "SF_REQUEST_TIMEOUT_SECONDS", _DEFAULT_REQUEST_TIMEOUT_SECONDS
        ),
        poll_initial_delay_seconds=_positive_float(
            "SF_POLL_INITIAL_DELAY_SECONDS", _DEFAULT_POLL_INITIAL_DELAY_SECONDS
        ),
        poll_backoff=_poll_backoff(),
        poll_timeout_seconds=_positive_float(
            "SF_POLL_TIMEOUT_SECONDS", _DEFAULT_POLL_TIMEOUT_SECONDS
        ),
        html_export_dir=export_dir,
        tokens=_tokens_from_env(),
    )


def _tokens_from_env() -> dict[str, str]:
    tokens: dict[str, str] = {}
    prefix = f"{_TOKEN_ENV}_"
    for name, value in os.environ.items():
        value = value.strip()
        if not value:
            continue
        if name == _TOKEN_ENV:
            tokens[""] = value
        elif name.startswith(prefix):
            tokens[name[len(prefix) :]] = value
    return tokens


def _positive_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = float(raw)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _poll_backoff() -> float:
    raw = os.getenv("SF_POLL_BACKOFF")
    if raw is None:
        return _DEFAULT_POLL_BACKOFF
    try:
        parsed = float(raw)
    except ValueError:
        return _DEFAULT_POLL_BACKOFF
    return parsed if parsed >= 1 else _DEFAULT_POLL_BACKOFF
