"""Blink exception hierarchy.

All Blink-specific exceptions inherit from BlinkError and carry a
machine-readable ``kind`` so API layers can report *why* a call was
refused, not only that it was.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from blink.security.url_guard import SafetyVerdict


class BlinkError(Exception):
    """Base exception for all Blink errors."""

    kind = "error"

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class InvalidRequestError(BlinkError):
    """Malformed user input: bad JSON, bad URL, unsupported method."""

    kind = "validation_error"


class InvalidItemTypeError(InvalidRequestError):
    kind = "invalid_item_type"


class NotFoundError(BlinkError):
    kind = "not_found"


class UrlBlockedError(BlinkError):
    """URL refused by the SSRF validator before any socket was opened."""

    kind = "ssrf_protection"

    def __init__(self, verdict: SafetyVerdict) -> None:
        super().__init__(verdict.reason)
        self.verdict = verdict


class ExecutionError(BlinkError):
    """The outbound request could not be completed."""

    kind = "execution_error"


class MalformedTargetError(ExecutionError):
    """The target URL passed validation but the HTTP client cannot send to it."""

    kind = "invalid_request"


class RedirectLimitExceeded(ExecutionError):
    kind = "redirect_limit_exceeded"


class RedirectBlocked(ExecutionError):
    """A redirect hop pointed at a target the validator refuses."""

    kind = "redirect_blocked"

    def __init__(self, verdict: SafetyVerdict) -> None:
        super().__init__(f"redirect blocked: {verdict.reason}")
        self.verdict = verdict


class NetworkError(ExecutionError):
    """Connect, TLS or transport failure."""

    kind = "network_error"

    def __init__(self, message: str = "", *, retryable: bool = True) -> None:
        super().__init__(message, retryable=retryable)


class RequestTimeout(NetworkError):
    kind = "timeout"


class RateLimited(BlinkError):
    """Client exhausted its token bucket."""

    kind = "rate_limited"

    def __init__(self, client: str, *, retry_after: float) -> None:
        super().__init__(f"rate limit exceeded for {client}", retryable=True)
        self.client = client
        self.retry_after = retry_after


class AutostartError(BlinkError):
    """Registering or removing the agent's autostart entry failed."""

    kind = "autostart_error"
