"""Outbound request safety checks."""

from blink.security.url_guard import SafetyVerdict, UrlPolicy, Verdict, validate_url

__all__ = ["SafetyVerdict", "UrlPolicy", "Verdict", "validate_url"]
