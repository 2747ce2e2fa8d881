"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to the Bot Framework JSON schema.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

ACTIVITY_MESSAGE = "message"
ACTIVITY_REACTION = "messageReaction"
ACTIVITY_CONVERSATION_UPDATE = "conversationUpdate"
ACTIVITY_INVOKE = "invoke"

# Registry capability types, named after the handle types that consume them.
CAPABILITY_SEND_MESSAGE = "sendMessage"
CAPABILITY_THREAD_SUBSCRIPTION = "threadSubscription"
CAPABILITY_MENTIONS_SUBSCRIPTION = "mentionsSubscription"


@dataclass(frozen=True)
class ChannelAccount:
    """Sender or recipient identity as reported by the platform."""

    id: str = ""
    name: Optional[str] = None
    aad_object_id: Optional[str] = None


@dataclass(frozen=True)
class Activity:
    """Minimal inbound activity used by the routing core."""

    kind: str
    id: str
    conversation_id: str
    sender: ChannelAccount
    text: str = ""
    reply_to_id: Optional[str] = None
    value: Optional[dict[str, Any]] = None
    name: Optional[str] = None
    reactions_added: tuple[str, ...] = ()
    reactions_removed: tuple[str, ...] = ()
    entities: tuple[dict[str, Any], ...] = ()
    channel_data: dict[str, Any] = field(default_factory=dict)
    attachments: tuple[dict[str, Any], ...] = ()
    timestamp: Optional[str] = None
    service_url: Optional[str] = None

    @property
    def teams_channel_id(self) -> Optional[str]:
        return self.channel_data.get("teamsChannelId")


class Classification(Enum):
    MENTION = "mention"
    REPLY = "reply"
    ACTION = "action"
    REACTION = "reaction"
    IGNORED = "ignored"


@dataclass(frozen=True)
class ClassifiedActivity:
    """An activity together with the routing decision made for it.

    ``anchor`` is the id subscriptions are indexed under: the replied-to
    activity id for actions and reactions, the conversation id for replies.
    ``channel_id`` is only set for mentions and feeds the channel filter.
    """

    classification: Classification
    activity: Activity
    anchor: Optional[str] = None
    reply_to_id: Optional[str] = None
    channel_id: Optional[str] = None

    @property
    def ignored(self) -> bool:
        return self.classification is Classification.IGNORED


@dataclass(frozen=True)
class SubscriberHandle:
    """A registered consumer as listed by the subscriber registry."""

    id: str
    capability: str
    config: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RoutedEvent:
    """One normalized event handed to the event sink for one subscriber."""

    subscriber_id: str
    payload: dict[str, Any]
    parent_event_id: Optional[str] = None
    output_key: Optional[str] = None
