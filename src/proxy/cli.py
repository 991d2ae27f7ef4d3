"""Click CLI for running and exercising the webhook relay."""

from __future__ import annotations

import asyncio
import json
import logging
import os

import click
import uvicorn

from src.models import DEFAULT_SLACK_API_BASE
from src.webhook.slack import SlackNotifier


@click.group()
def cli() -> None:
    """Webhook relay CLI."""


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address.")
@click.option("--port", default=8787, type=int, help="Bind port.")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["critical", "error", "warning", "info", "debug"]),
    help="Log level for the server and the relay loggers.",
)
def serve(host: str, port: int, log_level: str) -> None:
    """Serve the relay; configuration comes from the environment."""
    logging.basicConfig(level=log_level.upper())
    uvicorn.run(
        "src.proxy.app:create_app_from_env",
        factory=True,
        host=host,
        port=port,
        log_level=log_level,
    )


@cli.command()
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--channel",
    default=None,
    help="Slack channel ID. Defaults to $SLACK_CHANNEL_ID.",
)
def notify(payload_file: str, channel: str | None) -> None:
    """Post the relay notification for a JSON payload file to Slack."""
    token = os.environ.get("SLACK_BOT_TOKEN")
    if not token:
        raise click.UsageError("SLACK_BOT_TOKEN is not set")
    channel_id = channel or os.environ.get("SLACK_CHANNEL_ID")
    if not channel_id:
        raise click.UsageError("No channel given and SLACK_CHANNEL_ID is not set")

    with open(payload_file) as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as exc:
            raise click.BadParameter(f"not valid JSON: {exc}", param_hint="PAYLOAD_FILE")

    notifier = SlackNotifier(
        token, os.environ.get("SLACK_API_BASE", DEFAULT_SLACK_API_BASE),
    )
    asyncio.run(notifier.send_webhook_notification(payload, channel_id))
    click.echo(f"Notification attempted for channel {channel_id}")
