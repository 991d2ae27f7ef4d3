"""FastAPI application hosting the webhook relay."""

from __future__ import annotations

import os

from fastapi import BackgroundTasks, FastAPI, Request, Response

from src.models import DEFAULT_SLACK_API_BASE, RelayConfig
from src.webhook.relay import WebhookRelayHandler
from src.webhook.slack import SlackNotifier

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]


def load_config_from_env() -> RelayConfig:
    """Build RelayConfig from environment variables. Missing required vars raise KeyError."""
    return RelayConfig(
        slack_token=os.environ["SLACK_BOT_TOKEN"],
        slack_channel_id=os.environ["SLACK_CHANNEL_ID"],
        secondary_url=os.environ["SECONDARY_WEBHOOK_URL"],
        slack_api_base=os.environ.get("SLACK_API_BASE", DEFAULT_SLACK_API_BASE),
    )


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    return create_app(load_config_from_env())


def create_app(
    config: RelayConfig,
    notifier: SlackNotifier | None = None,
) -> FastAPI:
    """Create the relay FastAPI app."""
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    handler = WebhookRelayHandler(
        notifier=notifier or SlackNotifier(config.slack_token, config.slack_api_base),
        channel_id=config.slack_channel_id,
        secondary_url=config.secondary_url,
    )

    @app.api_route("/{path:path}", methods=ALL_METHODS)
    async def relay(request: Request, background_tasks: BackgroundTasks, path: str) -> Response:
        body = await request.body()
        outcome = await handler.relay(request.method, _inbound_url(request), body)

        # Runs after the response is sent, inside the request scope.
        if outcome.payload is not None:
            background_tasks.add_task(handler.fan_out, outcome.payload)

        result = outcome.response
        response = Response(
            content=result.content,
            status_code=result.status_code,
            media_type=result.media_type,
        )
        # Raw pairs so repeated headers such as set-cookie survive.
        response.raw_headers.extend(
            (k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in result.headers
        )
        return response

    return app


def _inbound_url(request: Request) -> str:
    """Request URL with the path as sent on the wire, percent-escapes kept."""
    raw_path = request.scope.get("raw_path")
    if not raw_path:
        return str(request.url)
    return str(request.url.replace(path=raw_path.decode("latin-1")))
