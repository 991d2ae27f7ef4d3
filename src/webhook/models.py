"""Data models for the webhook relay handler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class RelayTarget:
    """Validated relay target extracted from contactMetadata.webhookUrl."""

    url: str
    host: str
    path: str


@dataclass
class WebhookResponse:
    """Response to return to the inbound caller."""

    content: bytes
    status_code: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    media_type: str | None = None

    @property
    def text(self) -> str:
        return self.content.decode(errors="replace")


@dataclass(frozen=True)
class ChatThread:
    """Channel and thread timestamp returned by the first Slack post."""

    channel: str
    ts: str


@dataclass
class RelayOutcome:
    """Result of one relay call.

    ``payload`` is set only when the primary forward was attempted, which is
    the signal for scheduling the background fan-out.
    """

    response: WebhookResponse
    payload: dict[str, Any] | None = None
