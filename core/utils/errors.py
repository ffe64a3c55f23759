"""Custom exceptions for core logic."""

from __future__ import annotations


class UserInputError(Exception):
    """Raised when command arguments cannot be satisfied (unknown case, bad pattern, bad URL)."""

    def __init__(self, message: str, *, handle: str | None = None) -> None:
        super().__init__(message)
        self.handle = handle


class TemplateNotFoundError(Exception):
    """Raised when the primary template is missing locally or remotely."""

    def __init__(self, message: str, *, handle: str, kind: str | None = None) -> None:
        super().__init__(message)
        self.handle = handle
        self.kind = kind


class UnauthorizedFirmError(Exception):
    """Raised when no access token resolves for the requested firm."""

    def __init__(self, message: str, *, firm_id: str) -> None:
        super().__init__(message)
        self.firm_id = firm_id


class RunTimeoutError(TimeoutError):
    """Raised when a remote run does not reach a terminal status in time."""

    def __init__(self, message: str, *, run_id: int | str, waited_seconds: float) -> None:
        super().__init__(message)
        self.run_id = run_id
        self.waited_seconds = waited_seconds


class RemoteRequestError(Exception):
    """Raised for remote responses that must stop the whole operation (403, 422)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None,
        method: str,
        url: str,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.method = method
        self.url = url
        self.detail = detail
