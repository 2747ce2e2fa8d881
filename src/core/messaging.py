"""Outbound messaging operations that create subscriptions.

Sending a message subscribes the sending handle to reactions and card
actions on it; subscribing to replies registers a handle for a whole
conversation thread. Both record the triggering event as the origin that
routed events will be parented to.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from core.errors import MessageContentError
from core.keys import Namespace
from core.ports import MessageTransportPort
from core.subscriptions import SubscriptionIndex

LOGGER = logging.getLogger(__name__)

ADAPTIVE_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def wrap_adaptive_cards(cards: Optional[list[dict]]) -> Optional[list[dict]]:
    """Wrap raw Adaptive Card JSON objects as message attachments."""

    if not cards:
        return None
    return [{"contentType": ADAPTIVE_CARD_CONTENT_TYPE, "content": card} for card in cards]


def _require_content(text: Optional[str], cards: Optional[list[dict]], what: str) -> None:
    if not text and not cards:
        raise MessageContentError(f"{what} must have either text content or adaptive cards")


class MessagingService:
    """Relays send/update/delete calls and keeps the subscription index in sync."""

    def __init__(self, transport: MessageTransportPort, index: SubscriptionIndex) -> None:
        self._transport = transport
        self._index = index

    def send_message(
        self,
        subscriber_id: str,
        event_id: str,
        channel_id: str,
        text: Optional[str] = None,
        cards: Optional[list[dict]] = None,
        conversation_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Post a message (or thread reply) and subscribe to its events.

        Returns the "message sent" output: activityId, conversationId,
        channelId, timestamp.
        """

        _require_content(text, cards, "Message")
        activity_id, posted_conversation_id = self._transport.send(
            channel_id,
            text,
            wrap_adaptive_cards(cards),
            conversation_id=conversation_id,
        )
        self._index.register(Namespace.EVENTS, activity_id, subscriber_id, event_id)
        LOGGER.info("Sent message %s to %s", activity_id, posted_conversation_id)
        return {
            "activityId": activity_id,
            "conversationId": posted_conversation_id,
            "channelId": channel_id,
            "timestamp": _now_iso(),
        }

    def update_message(
        self,
        conversation_id: str,
        activity_id: str,
        text: Optional[str] = None,
        cards: Optional[list[dict]] = None,
    ) -> dict[str, Any]:
        _require_content(text, cards, "Updated message")
        self._transport.update(conversation_id, activity_id, text, wrap_adaptive_cards(cards))
        LOGGER.info("Updated message %s", activity_id)
        return {
            "activityId": activity_id,
            "conversationId": conversation_id,
            "timestamp": _now_iso(),
        }

    def delete_message(self, conversation_id: str, activity_id: str) -> dict[str, Any]:
        self._transport.delete(conversation_id, activity_id)
        LOGGER.info("Deleted message %s", activity_id)
        return {
            "activityId": activity_id,
            "conversationId": conversation_id,
            "timestamp": _now_iso(),
        }

    def subscribe_to_replies(self, subscriber_id: str, event_id: str, conversation_id: str) -> None:
        """Route future replies in ``conversation_id`` to ``subscriber_id``."""

        self._index.register(Namespace.REPLIES, conversation_id, subscriber_id, event_id)

    def get_user_info(self, conversation_id: str, user_id: str) -> dict[str, Any]:
        """Look up a conversation member's profile."""

        member = self._transport.get_member(conversation_id, user_id)
        return {
            "name": member.get("name"),
            "email": member.get("email"),
            "aadObjectId": member.get("aadObjectId"),
            "userPrincipalName": member.get("userPrincipalName"),
        }
