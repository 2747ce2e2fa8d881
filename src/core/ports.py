"""Ports (interfaces) used by the routing core.

Ports define the minimal contracts for storage, the subscriber registry,
event emission, and the outbound platform API so that the core can be reused
with different backends.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

from core.models import RoutedEvent, SubscriberHandle

# Scope holding correlation keys shared by every subscriber handle.
SHARED_SCOPE = "shared"


def handle_scope(subscriber_id: str) -> str:
    """Return the handle-local storage scope for one subscriber."""

    return f"handle:{subscriber_id}"


class KeyValueStorePort(Protocol):
    """Scoped key-value operations required by the subscription index."""

    def scoped_set(self, scope: str, key: str, value: Any) -> None:
        ...

    def get(self, scope: str, key: str) -> Optional[Any]:
        ...

    def list_by_prefix(self, scope: str, prefix: str) -> list[tuple[str, Any]]:
        ...


class SubscriberRegistryPort(Protocol):
    """Lists the subscriber handles that currently exist."""

    def list_by_capability(self, capability: str) -> list[SubscriberHandle]:
        ...


class EventSinkPort(Protocol):
    """Receives routed events, one call per subscriber."""

    async def emit(self, event: RoutedEvent) -> None:
        ...


class MessageTransportPort(Protocol):
    """Outbound calls against the messaging platform."""

    def send(
        self,
        channel_id: str,
        text: Optional[str],
        attachments: Optional[list[dict]],
        conversation_id: Optional[str] = None,
    ) -> tuple[str, str]:
        """Return ``(activity_id, conversation_id)`` of the posted message."""
        ...

    def update(
        self,
        conversation_id: str,
        activity_id: str,
        text: Optional[str],
        attachments: Optional[list[dict]],
    ) -> None:
        ...

    def delete(self, conversation_id: str, activity_id: str) -> None:
        ...

    def get_member(self, conversation_id: str, user_id: str) -> dict:
        ...
