"""Exceptions raised by the routing core and the relay adapters."""

from __future__ import annotations

from typing import Optional


class RelayError(RuntimeError):
    """Base class for teams-relay failures."""


class MessageContentError(RelayError, ValueError):
    """Raised when an outbound message has neither text nor cards."""


class TransportError(RelayError):
    """Raised when the messaging platform rejects an outbound call."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class EventDeliveryError(RelayError):
    """Raised when every delivery attempted for one activity failed."""
