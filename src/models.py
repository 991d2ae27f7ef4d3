"""Shared Pydantic data models for the webhook relay."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_SLACK_API_BASE = "https://slack.com/api"


class RelayConfig(BaseModel):
    """Deployment configuration injected into the app at startup."""

    model_config = ConfigDict(frozen=True)

    slack_token: str = Field(min_length=1)
    slack_channel_id: str = Field(min_length=1)
    secondary_url: str = Field(min_length=1)
    slack_api_base: str = DEFAULT_SLACK_API_BASE
