"""Local execution agent bound to loopback."""

from blink.agent.autostart import register_autostart, unregister_autostart

__all__ = ["register_autostart", "unregister_autostart"]
