"""``blink-agent`` command: serve the local agent and manage login autostart."""

from __future__ import annotations

import shutil
import sys

import click

from blink import __version__
from blink.agent.app import AGENT_HOST
from blink.agent.autostart import register_autostart, unregister_autostart
from blink.config import get_settings
from blink.errors import AutostartError
from blink.logging import configure_logging


def _agent_executable() -> str:
    return shutil.which("blink-agent") or sys.argv[0]


@click.group()
@click.version_option(__version__, prog_name="blink-agent")
def cli() -> None:
    """Blink local agent."""


@cli.command()
@click.option("--port", type=int, default=None, help="Port to listen on (default: AGENT_PORT).")
def serve(port: int | None) -> None:
    """Run the agent on 127.0.0.1."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    resolved_port = port or settings.agent_port
    click.echo(f"Blink Agent v{__version__} starting on http://{AGENT_HOST}:{resolved_port}")
    uvicorn.run(
        "blink.agent.app:app",
        host=AGENT_HOST,
        port=resolved_port,
        log_config=None,
        timeout_graceful_shutdown=5,
    )


@cli.command()
@click.option(
    "--executable",
    type=click.Path(path_type=str),
    default=None,
    help="Agent executable to register (default: the installed blink-agent).",
)
def install(executable: str | None) -> None:
    """Start the agent automatically at login."""
    try:
        location = register_autostart(executable or _agent_executable())
    except AutostartError as exc:
        raise click.ClickException(f"failed to install agent: {exc}") from exc
    click.echo(f"Autostart entry installed at: {location}")


@cli.command()
def uninstall() -> None:
    """Remove the agent from login autostart."""
    try:
        unregister_autostart()
    except AutostartError as exc:
        raise click.ClickException(f"failed to uninstall agent: {exc}") from exc
    click.echo("Blink Agent removed from autostart")
