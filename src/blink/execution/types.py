"""Execution data models."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, field_validator

from blink.errors import BlinkError, InvalidRequestError
from blink.security.url_guard import SafetyVerdict

ALLOWED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def normalize_method(method: str) -> str:
    value = method.strip().upper()
    if value not in ALLOWED_METHODS:
        raise InvalidRequestError(
            f"unsupported HTTP method: {method} (allowed: {', '.join(ALLOWED_METHODS)})"
        )
    return value


def normalize_headers(headers: dict[str, str] | None) -> dict[str, str]:
    """Collapse header names case-insensitively; the last value for a name wins."""
    normalized: dict[str, str] = {}
    seen: dict[str, str] = {}
    for raw_name, value in (headers or {}).items():
        name = raw_name.strip()
        if not name:
            continue
        previous = seen.get(name.lower())
        if previous is not None:
            normalized.pop(previous, None)
        seen[name.lower()] = name
        normalized[name] = value
    return normalized


@dataclass(slots=True)
class RequestDescriptor:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None

    def __post_init__(self) -> None:
        self.method = normalize_method(self.method)
        self.url = self.url.strip()
        if not self.url:
            raise InvalidRequestError("request URL is missing")
        self.headers = normalize_headers(self.headers)

    @property
    def outbound_body(self) -> bytes | None:
        if self.method in BODY_METHODS and self.body:
            return self.body.encode("utf-8")
        return None

    @classmethod
    def merge(
        cls,
        *,
        method: str | None,
        url: str | None,
        headers: dict[str, str] | None,
        body: str | None,
        overrides: ExecuteOverrides | None = None,
    ) -> RequestDescriptor:
        """Build a descriptor from stored fields; each override replaces its field wholesale."""
        if not method:
            raise InvalidRequestError("request is missing method")
        if overrides is not None:
            if overrides.url is not None:
                url = overrides.url
            if overrides.headers is not None:
                headers = overrides.headers
            if overrides.body is not None:
                body = overrides.body
        if not url:
            raise InvalidRequestError(
                "request URL is missing; provide url in the request body "
                "or store one on the item"
            )
        return cls(method=method, url=url, headers=dict(headers or {}), body=body)


@dataclass(slots=True)
class ExecutionResult:
    status: int = 0
    status_text: str = ""
    headers: dict[str, list[str]] = field(default_factory=dict)
    body: str = ""
    duration_ms: int = 0
    truncated: bool = False
    error: str | None = None
    error_kind: str | None = None
    verdict: SafetyVerdict | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, exc: BlinkError, *, duration_ms: int) -> ExecutionResult:
        return cls(
            duration_ms=duration_ms,
            error=str(exc),
            error_kind=exc.kind,
            verdict=getattr(exc, "verdict", None),
        )

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "status": self.status,
            "statusText": self.status_text,
            "headers": self.headers,
            "body": self.body,
            "duration_ms": self.duration_ms,
            "truncated": self.truncated,
        }
        if self.error is not None:
            payload["error"] = self.error
            payload["error_kind"] = self.error_kind
        return payload


class ExecuteOverrides(BaseModel):
    """Optional per-call replacements for a stored item's fields."""

    model_config = ConfigDict(extra="forbid")

    url: str | None = None
    headers: dict[str, str] | None = None
    body: str | None = None


class ExecuteInput(BaseModel):
    """Full request contract accepted by the local agent."""

    model_config = ConfigDict(extra="ignore")

    method: str
    url: str
    headers: dict[str, str] | None = None
    body: str | None = None

    @field_validator("method")
    @classmethod
    def _method(cls, value: str) -> str:
        value = value.strip().upper()
        if value not in ALLOWED_METHODS:
            raise ValueError(f"method must be one of: {', '.join(ALLOWED_METHODS)}")
        return value

    @field_validator("url")
    @classmethod
    def _url(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("url is required")
        return value.strip()

    def to_descriptor(self) -> RequestDescriptor:
        return RequestDescriptor(
            method=self.method,
            url=self.url,
            headers=dict(self.headers or {}),
            body=self.body or "",
        )
