"""Blink: run stored HTTP requests without turning the server into an open proxy."""

__version__ = "1.0.0"
