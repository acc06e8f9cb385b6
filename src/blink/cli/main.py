"""Click CLI group: serve, migrate and check-url commands."""

from __future__ import annotations

import json

import click

from blink.config import get_settings, validate_settings_for_env
from blink.db.migrations.runner import run_migrations
from blink.security.url_guard import validate_url


@click.group()
def cli() -> None:
    """Blink request runner CLI."""


@cli.command()
@click.option("--host", type=str, default=None, help="Bind host (default: HOST).")
@click.option("--port", type=int, default=None, help="Bind port (default: PORT).")
def serve(host: str | None, port: int | None) -> None:
    """Run the public API service."""
    import uvicorn

    settings = get_settings()
    try:
        validate_settings_for_env(settings)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    uvicorn.run(
        "blink.main:app",
        host=host or settings.bind_host,
        port=port or settings.bind_port,
        log_config=None,
    )


@cli.command()
def migrate() -> None:
    """Apply pending database migrations."""
    applied = run_migrations()
    if not applied:
        click.echo("database is up to date")
        return
    for name in applied:
        click.echo(f"applied {name}")


@cli.command("check-url")
@click.argument("url")
@click.option(
    "--allow-localhost/--block-localhost", default=None, help="Override ALLOW_LOCALHOST."
)
@click.option(
    "--allow-private-ips/--block-private-ips", default=None, help="Override ALLOW_PRIVATE_IPS."
)
@click.option("--json", "json_output", is_flag=True, help="Print the verdict as JSON.")
def check_url(
    url: str, allow_localhost: bool | None, allow_private_ips: bool | None, json_output: bool
) -> None:
    """Run the SSRF validator against URL without sending anything."""
    settings = get_settings()
    verdict = validate_url(
        url,
        allow_localhost=settings.allow_localhost if allow_localhost is None else allow_localhost,
        allow_private_ips=(
            settings.allow_private_ips if allow_private_ips is None else allow_private_ips
        ),
    )
    if json_output:
        click.echo(
            json.dumps(
                {
                    "url": url,
                    "outcome": verdict.outcome.value,
                    "reason": verdict.reason,
                    "address": verdict.address,
                    "address_class": verdict.address_class,
                }
            )
        )
    else:
        click.echo(f"{verdict.outcome.value}: {verdict.reason or url}")
    if not verdict.allowed:
        raise SystemExit(1)
