"""Register the agent to start at user login.

Each platform gets one backend with ``register(executable_path)`` and
``unregister()``; :func:`get_autostart_backend` picks the right one.
"""

from __future__ import annotations

import logging
import plistlib
import subprocess
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Protocol

from blink.errors import AutostartError

logger = logging.getLogger(__name__)

LAUNCH_AGENT_LABEL = "com.blink.agent"
DESKTOP_ENTRY_NAME = "blink-agent.desktop"
RUN_KEY_PATH = r"Software\Microsoft\Windows\CurrentVersion\Run"
RUN_VALUE_NAME = "BlinkAgent"
DEFAULT_ARGS: tuple[str, ...] = ("serve",)

Runner = Callable[..., subprocess.CompletedProcess[str]]
Spawner = Callable[..., object]


class AutostartBackend(Protocol):
    name: str

    def register(self, executable_path: str) -> str:
        """Install the login entry; return where it was written."""
        ...

    def unregister(self) -> None: ...


def _spawn_detached(spawner: Spawner, command: Sequence[str]) -> bool:
    try:
        spawner(
            list(command),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as exc:
        logger.warning("could not start agent now, it will start on next login: %s", exc)
        return False
    return True


class MacOSLaunchAgent:
    name = "launchd"

    def __init__(
        self,
        home: Path | None = None,
        *,
        args: Sequence[str] = DEFAULT_ARGS,
        runner: Runner = subprocess.run,
    ) -> None:
        self.home = home or Path.home()
        self.args = tuple(args)
        self._run = runner

    @property
    def plist_path(self) -> Path:
        return self.home / "Library" / "LaunchAgents" / f"{LAUNCH_AGENT_LABEL}.plist"

    def render(self, executable_path: str) -> bytes:
        return plistlib.dumps(
            {
                "Label": LAUNCH_AGENT_LABEL,
                "ProgramArguments": [executable_path, *self.args],
                "RunAtLoad": True,
                "KeepAlive": True,
                "StandardOutPath": "/tmp/blink-agent.log",
                "StandardErrorPath": "/tmp/blink-agent.err",
            }
        )

    def _launchctl(self, action: str) -> subprocess.CompletedProcess[str]:
        try:
            return self._run(
                ["launchctl", action, str(self.plist_path)],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise AutostartError(f"failed to run launchctl {action}: {exc}") from exc

    def register(self, executable_path: str) -> str:
        path = self.plist_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(self.render(executable_path))
        except OSError as exc:
            raise AutostartError(f"failed to write plist file: {exc}") from exc

        result = self._launchctl("load")
        if result.returncode != 0:
            # already loaded: reload so the new plist takes effect
            self._launchctl("unload")
            retry = self._launchctl("load")
            if retry.returncode != 0:
                raise AutostartError(
                    f"failed to load launch agent: {(retry.stderr or result.stderr).strip()}"
                )
        logger.info("macOS LaunchAgent installed at %s", path)
        return str(path)

    def unregister(self) -> None:
        path = self.plist_path
        if path.exists():
            self._launchctl("unload")
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise AutostartError(f"failed to remove plist file: {exc}") from exc
        logger.info("Blink agent removed from launchd autostart")


class LinuxDesktopAutostart:
    """XDG autostart entry under ``~/.config/autostart``."""

    name = "xdg-autostart"

    def __init__(
        self,
        home: Path | None = None,
        *,
        args: Sequence[str] = DEFAULT_ARGS,
        start_now: bool = True,
        spawner: Spawner = subprocess.Popen,
    ) -> None:
        self.home = home or Path.home()
        self.args = tuple(args)
        self.start_now = start_now
        self._spawn = spawner

    @property
    def entry_path(self) -> Path:
        return self.home / ".config" / "autostart" / DESKTOP_ENTRY_NAME

    def render(self, executable_path: str) -> str:
        command = " ".join([executable_path, *self.args])
        return (
            "[Desktop Entry]\n"
            "Type=Application\n"
            "Name=Blink Agent\n"
            f"Exec={command}\n"
            "Hidden=false\n"
            "NoDisplay=false\n"
            "X-GNOME-Autostart-enabled=true\n"
            "Comment=Local agent for Blink API testing\n"
        )

    def register(self, executable_path: str) -> str:
        path = self.entry_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.render(executable_path), encoding="utf-8")
        except OSError as exc:
            raise AutostartError(f"failed to write desktop entry: {exc}") from exc
        logger.info("Linux autostart entry created at %s", path)
        if self.start_now and _spawn_detached(self._spawn, [executable_path, *self.args]):
            logger.info("Blink agent started in background")
        return str(path)

    def unregister(self) -> None:
        try:
            self.entry_path.unlink(missing_ok=True)
        except OSError as exc:
            raise AutostartError(f"failed to remove desktop entry: {exc}") from exc
        logger.info("Blink agent removed from XDG autostart")


class WindowsRunKey:
    """``HKCU\\...\\Run`` value pointing at the agent executable."""

    name = "windows-run-key"

    def __init__(
        self,
        *,
        args: Sequence[str] = DEFAULT_ARGS,
        start_now: bool = True,
        spawner: Spawner = subprocess.Popen,
    ) -> None:
        self.args = tuple(args)
        self.start_now = start_now
        self._spawn = spawner

    def command_line(self, executable_path: str) -> str:
        return " ".join([f'"{executable_path}"', *self.args])

    def register(self, executable_path: str) -> str:
        import winreg

        try:
            with winreg.OpenKey(
                winreg.HKEY_CURRENT_USER, RUN_KEY_PATH, 0, winreg.KEY_SET_VALUE
            ) as key:
                winreg.SetValueEx(
                    key, RUN_VALUE_NAME, 0, winreg.REG_SZ, self.command_line(executable_path)
                )
        except OSError as exc:
            raise AutostartError(f"failed to add registry key: {exc}") from exc
        logger.info("Windows Run key %s added for autostart", RUN_VALUE_NAME)
        if self.start_now:
            _spawn_detached(self._spawn, [executable_path, *self.args])
        return f"HKCU\\{RUN_KEY_PATH}\\{RUN_VALUE_NAME}"

    def unregister(self) -> None:
        import winreg

        try:
            with winreg.OpenKey(
                winreg.HKEY_CURRENT_USER, RUN_KEY_PATH, 0, winreg.KEY_SET_VALUE
            ) as key:
                winreg.DeleteValue(key, RUN_VALUE_NAME)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise AutostartError(f"failed to remove registry key: {exc}") from exc
        logger.info("Blink agent removed from Windows autostart")


def get_autostart_backend(
    platform: str | None = None, *, home: Path | None = None
) -> AutostartBackend:
    platform = platform or sys.platform
    if platform == "darwin":
        return MacOSLaunchAgent(home)
    if platform.startswith("linux"):
        return LinuxDesktopAutostart(home)
    if platform in {"win32", "cygwin"}:
        return WindowsRunKey()
    raise AutostartError(f"unsupported operating system: {platform}")


def register_autostart(executable_path: str, *, backend: AutostartBackend | None = None) -> str:
    resolved = str(Path(executable_path).resolve())
    return (backend or get_autostart_backend()).register(resolved)


def unregister_autostart(*, backend: AutostartBackend | None = None) -> None:
    (backend or get_autostart_backend()).unregister()
