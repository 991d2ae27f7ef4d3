"""Webhook relay handler.

Forwards an inbound webhook to the URL carried in its own payload
(``contactMetadata.webhookUrl``), then fans the payload out to a fixed
secondary endpoint and a Slack channel in the background.

Stages:
1. Method check (POST only)
2. Parse JSON body
3. Extract and validate the relay target
4. Loop prevention (target must not be this endpoint)
5. Forward to the relay target via httpx
6. Shape the response (success envelope or verbatim passthrough)

The fan-out (``fan_out``) is not run here; the caller schedules it once
the response is ready.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import httpx

from src.webhook.models import RelayOutcome, RelayTarget, WebhookResponse

if TYPE_CHECKING:
    from src.webhook.slack import SlackNotifier

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Webhook forwarded successfully"

# httpx has already decoded the body, so content-encoding no longer applies.
_HOP_BY_HOP = (
    "content-length", "transfer-encoding", "connection", "keep-alive", "content-encoding",
)


class RelayError(Exception):
    """Base class for rejections raised while handling an inbound webhook."""

    status_code = 400
    message = "Bad request"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.message)


class InvalidPayloadError(RelayError):
    """Body is not a JSON object."""


class InvalidWebhookUrlError(RelayError):
    message = "Invalid webhook URL"


class SelfForwardError(RelayError):
    message = "Cannot forward webhook to itself"


def _reject_constant(name: str) -> Any:
    raise InvalidPayloadError(f"Non-JSON constant in body: {name}")


def parse_payload(body: bytes) -> dict[str, Any]:
    try:
        payload = json.loads(body, parse_constant=_reject_constant)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidPayloadError(f"Malformed JSON body: {exc}") from exc
    if not isinstance(payload, dict):
        raise InvalidPayloadError("JSON body is not an object")
    return payload


def parse_absolute_url(value: object) -> httpx.URL | None:
    """Return the parsed URL if ``value`` is an absolute URL with a host."""
    if not isinstance(value, str) or not value:
        return None
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL:
        return None
    if not url.scheme or not url.host:
        return None
    return url


def encoded_path(url: httpx.URL) -> str:
    """Path as written in the URL, percent-escapes kept."""
    return url.raw_path.split(b"?")[0].decode("ascii")


def extract_target(payload: Mapping[str, Any]) -> RelayTarget:
    """Read and validate contactMetadata.webhookUrl."""
    metadata = payload.get("contactMetadata")
    raw = metadata.get("webhookUrl") if isinstance(metadata, Mapping) else None
    url = parse_absolute_url(raw)
    if url is None:
        raise InvalidWebhookUrlError()
    return RelayTarget(url=str(raw), host=url.host, path=encoded_path(url))


def check_not_self(request_url: str, target: RelayTarget) -> None:
    """Reject a target whose host and path match the inbound request.

    Plain component comparison: ports, trailing slashes, query strings and
    percent-escapes are not normalized.
    """
    inbound = httpx.URL(request_url)
    if inbound.host == target.host and encoded_path(inbound) == target.path:
        raise SelfForwardError()


def encode_payload(payload: Any) -> bytes:
    return json.dumps(
        payload, separators=(",", ":"), ensure_ascii=False, allow_nan=False,
    ).encode()


def _strip_hop_by_hop(headers: httpx.Headers) -> list[tuple[str, str]]:
    return [(k, v) for k, v in headers.multi_items() if k.lower() not in _HOP_BY_HOP]


def _text_response(text: str, status_code: int) -> WebhookResponse:
    return WebhookResponse(
        content=text.encode(), status_code=status_code, media_type="text/plain",
    )


class WebhookRelayHandler:
    """Validates, forwards and fans out inbound webhooks."""

    def __init__(
        self,
        notifier: SlackNotifier,
        channel_id: str,
        secondary_url: str,
    ) -> None:
        self._notifier = notifier
        self._channel_id = channel_id
        self._secondary_url = secondary_url

    async def relay(self, method: str, request_url: str, body: bytes) -> RelayOutcome:
        """Handle one inbound request up to the primary response."""
        if method.upper() != "POST":
            return RelayOutcome(response=_text_response("Method not allowed", 405))

        try:
            payload = parse_payload(body)
            target = extract_target(payload)
            check_not_self(request_url, target)
            upstream = await self._forward(target.url, payload)
        except RelayError as exc:
            logger.info("Rejected webhook (%s): %s", type(exc).__name__, exc)
            return RelayOutcome(response=_text_response(exc.message, exc.status_code))
        except Exception:
            logger.warning("Webhook relay failed", exc_info=True)
            return RelayOutcome(response=_text_response(RelayError.message, 400))

        if 200 <= upstream.status_code < 300:
            envelope = {"success": True, "message": SUCCESS_MESSAGE}
            response = WebhookResponse(
                content=json.dumps(envelope, separators=(",", ":")).encode(),
                status_code=200,
                media_type="application/json",
            )
        else:
            logger.warning(
                "Relay target %s answered %s", target.url, upstream.status_code,
            )
            response = WebhookResponse(
                content=upstream.content,
                status_code=upstream.status_code,
                headers=_strip_hop_by_hop(upstream.headers),
            )
        return RelayOutcome(response=response, payload=payload)

    async def fan_out(self, payload: dict[str, Any]) -> None:
        """Mirror the payload to the secondary endpoint and notify Slack.

        Both run concurrently; a failure in one never affects the other.
        """
        await asyncio.gather(
            self._forward_secondary(payload),
            self._notify(payload),
        )

    async def _forward(self, url: str, payload: Any) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        async with httpx.AsyncClient(timeout=None) as client:
            return await client.post(url, content=encode_payload(payload), headers=headers)

    async def _forward_secondary(self, payload: Any) -> None:
        try:
            resp = await self._forward(self._secondary_url, payload)
            logger.info("Secondary forward answered %s", resp.status_code)
        except Exception:
            logger.exception("Secondary forward to %s failed", self._secondary_url)

    async def _notify(self, payload: Any) -> None:
        try:
            await self._notifier.send_webhook_notification(payload, self._channel_id)
        except Exception:
            logger.exception("Slack notification task failed")
