"""Slack chat notifier.

Wraps the ``chat.postMessage`` call used to announce relayed webhooks:
an initial message in the channel, then the payload posted into that
message's thread.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from src.models import DEFAULT_SLACK_API_BASE
from src.webhook.models import ChatThread

logger = logging.getLogger(__name__)

NOTIFICATION_TEXT = "Webhook forwarded successfully"


class SlackAPIError(Exception):
    """Raised when the Slack API answers with a non-2xx HTTP status."""

    def __init__(self, status_code: int, reason: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"Failed to send message to Slack: HTTP {status_code} {reason}".rstrip())


def format_payload_text(payload: Any) -> str:
    """Render the payload as a fenced JSON block for the thread reply."""
    rendered = json.dumps(payload, indent=2, ensure_ascii=False, allow_nan=False)
    return f"Payload: \n\n```json\n{rendered}\n```"


class SlackNotifier:
    """Posts relay notifications to a Slack channel."""

    def __init__(self, token: str, api_base: str = DEFAULT_SLACK_API_BASE) -> None:
        self._token = token
        self._api_base = api_base

    async def send_message(
        self,
        channel: str,
        text: str | None = None,
        thread_ts: str | None = None,
        attachments: list[dict[str, Any]] | None = None,
    ) -> httpx.Response:
        """POST to chat.postMessage. Raises SlackAPIError on non-2xx status."""
        url = f"{self._api_base.rstrip('/')}/chat.postMessage"
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }
        body: dict[str, Any] = {"channel": channel}
        if text is not None:
            body["text"] = text
        if thread_ts is not None:
            body["thread_ts"] = thread_ts
        if attachments is not None:
            body["attachments"] = attachments

        async with httpx.AsyncClient(timeout=None) as client:
            resp = await client.post(url, json=body, headers=headers)

        if not 200 <= resp.status_code < 300:
            logger.error(
                "Slack API HTTP error: %s %s", resp.status_code, resp.reason_phrase,
            )
            raise SlackAPIError(resp.status_code, resp.reason_phrase)
        return resp

    async def send_webhook_notification(self, payload: Any, channel_id: str) -> None:
        """Announce a relayed webhook, then post its payload in the thread.

        Never raises: every failure is logged and the flow stops.
        """
        try:
            thread = await self._post_parent(channel_id)
            if thread is None:
                return

            await self.send_message(
                channel=thread.channel,
                thread_ts=thread.ts,
                text=format_payload_text(payload),
            )
            logger.info("Slack notification sent to %s", channel_id)
        except Exception:
            logger.exception("Failed to send Slack notification")

    async def send_message_with_thread(
        self,
        channel: str,
        text: str | None = None,
        thread_text: str | None = None,
        attachments: list[dict[str, Any]] | None = None,
    ) -> None:
        """Send a message and a reply in its thread, sequentially.

        Unlike send_webhook_notification, errors propagate to the caller.
        """
        resp = await self.send_message(channel=channel, text=text, attachments=attachments)
        thread_ts = resp.json().get("ts")
        await self.send_message(channel=channel, thread_ts=thread_ts, text=thread_text)

    async def _post_parent(self, channel_id: str) -> ChatThread | None:
        resp = await self.send_message(channel=channel_id, text=NOTIFICATION_TEXT)
        data = resp.json()
        if not data.get("ok"):
            logger.error("Slack API error: %s", data)
            return None
        return ChatThread(channel=channel_id, ts=data.get("ts"))
