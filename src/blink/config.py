"""Application configuration contract."""

import re
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration_seconds(value: object) -> float:
    """Parse ``30``, ``2.5``, ``30s``, ``500ms`` or ``1m`` into seconds."""
    if isinstance(value, int | float):
        return float(value)
    match = _DURATION_RE.match(str(value))
    if match is None:
        raise ValueError(f"invalid duration: {value!r}")
    amount, unit = match.groups()
    return float(amount) * _DURATION_UNITS[unit or "s"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = Field(alias="APP_ENV", default="dev")
    app_db: str = Field(alias="APP_DB", default="/tmp/blink.db")
    log_level: str = Field(alias="LOG_LEVEL", default="INFO")

    # Security: bind host defaults to loopback
    bind_host: str = Field(alias="HOST", default="127.0.0.1")
    bind_port: int = Field(alias="PORT", default=8080)
    web_cors_origins: str = Field(alias="WEB_CORS_ORIGINS", default="http://localhost:5173")

    # Request execution
    request_timeout: float = Field(alias="REQUEST_TIMEOUT", default=30.0)
    max_request_size: int = Field(alias="MAX_REQUEST_SIZE", default=10 * 1024 * 1024)
    max_response_size: int = Field(alias="MAX_RESPONSE_SIZE", default=50 * 1024 * 1024)
    max_header_count: int = Field(alias="MAX_HEADER_COUNT", default=50)
    max_redirects: int = Field(alias="MAX_REDIRECTS", default=5)

    # Rate limiting
    rate_limit_rps: float = Field(alias="RATE_LIMIT_RPS", default=1000.0)
    rate_limit_burst: int = Field(alias="RATE_LIMIT_BURST", default=2000)
    rate_limit_idle_ttl: float = Field(alias="RATE_LIMIT_IDLE_TTL", default=600.0)

    # SSRF protection
    allow_localhost: bool = Field(alias="ALLOW_LOCALHOST", default=False)
    allow_private_ips: bool = Field(alias="ALLOW_PRIVATE_IPS", default=False)

    # Local agent (always bound to loopback)
    agent_port: int = Field(alias="AGENT_PORT", default=5555)

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value: object) -> float:
        return parse_duration_seconds(value)


def validate_settings_for_env(settings: Settings) -> None:
    import logging as _logging
    import warnings

    _logger = _logging.getLogger(__name__)

    invalid: list[str] = []
    positive = {
        "REQUEST_TIMEOUT": settings.request_timeout,
        "MAX_REQUEST_SIZE": settings.max_request_size,
        "MAX_RESPONSE_SIZE": settings.max_response_size,
        "MAX_HEADER_COUNT": settings.max_header_count,
        "RATE_LIMIT_RPS": settings.rate_limit_rps,
        "RATE_LIMIT_BURST": settings.rate_limit_burst,
    }
    for key, value in positive.items():
        if value <= 0:
            invalid.append(f"{key}(must be > 0)")
    if settings.max_redirects < 0:
        invalid.append("MAX_REDIRECTS(must be >= 0)")

    if settings.allow_localhost or settings.allow_private_ips:
        msg = (
            "SECURITY WARNING: ALLOW_LOCALHOST/ALLOW_PRIVATE_IPS is enabled. "
            "The execute endpoint can reach internal addresses."
        )
        _logger.warning(msg)
        if settings.app_env != "prod":
            warnings.warn(msg, stacklevel=2)

    if settings.app_env == "prod":
        if settings.allow_localhost:
            invalid.append("ALLOW_LOCALHOST(must be false in prod)")
        if settings.allow_private_ips:
            invalid.append("ALLOW_PRIVATE_IPS(must be false in prod)")
        if not settings.app_db.startswith("/"):
            invalid.append("APP_DB(absolute path required)")

    if invalid:
        keys = ", ".join(sorted(set(invalid)))
        raise ValueError(f"invalid configuration: {keys}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
