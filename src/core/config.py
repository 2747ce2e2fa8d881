"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BotConfig:
    """Bot identity and Bot Framework endpoints."""

    app_id: str
    app_password: str
    tenant_id: str
    service_url: str
    bot_name: str


@dataclass(frozen=True)
class EventSinkConfig:
    """Where routed events are delivered."""

    method: str
    webhook_url: str
