"""Correlation keys for the subscription index.

Keys are handled as typed values everywhere in the core; the ``|``-joined
string form only exists at the storage boundary so prefix scans stay cheap.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.models import Classification, ClassifiedActivity

KEY_SEPARATOR = "|"


class Namespace(Enum):
    # Never indexed: mention subscribers come straight from the registry.
    MENTIONS = "mentions"
    REPLIES = "replies"
    EVENTS = "events"


@dataclass(frozen=True)
class CorrelationKey:
    """One subscription registration: (namespace, anchor, subscriber)."""

    namespace: Namespace
    anchor: str
    subscriber_id: str

    def encode(self) -> str:
        return f"{key_prefix(self.namespace, self.anchor)}{self.subscriber_id}"

    @classmethod
    def decode(cls, raw_key: str) -> Optional["CorrelationKey"]:
        """Parse a stored key, returning None for anything not shaped like one.

        The namespace is the first segment and the subscriber the last, so
        anchors containing the separator still round-trip.
        """

        namespace_part, sep, rest = raw_key.partition(KEY_SEPARATOR)
        if not sep:
            return None
        anchor, sep, subscriber_id = rest.rpartition(KEY_SEPARATOR)
        if not sep or not anchor or not subscriber_id:
            return None
        try:
            namespace = Namespace(namespace_part)
        except ValueError:
            return None
        return cls(namespace=namespace, anchor=anchor, subscriber_id=subscriber_id)


def key_prefix(namespace: Namespace, anchor: str) -> str:
    """Return the range-scan prefix for all subscribers of an anchor."""

    return f"{namespace.value}{KEY_SEPARATOR}{anchor}{KEY_SEPARATOR}"


def namespace_for(classification: Classification) -> Optional[Namespace]:
    """Map a classification to the index namespace it is looked up in.

    Mentions are resolved against the registry directly and have no
    namespace here.
    """

    if classification in (Classification.ACTION, Classification.REACTION):
        return Namespace.EVENTS
    if classification is Classification.REPLY:
        return Namespace.REPLIES
    return None


def resolve_key_prefix(classified: ClassifiedActivity) -> Optional[str]:
    """Return the index prefix for a classified activity, if it uses the index."""

    namespace = namespace_for(classified.classification)
    if namespace is None or not classified.anchor:
        return None
    return key_prefix(namespace, classified.anchor)


def matches_channel_filter(handle_config: dict, channel_id: Optional[str]) -> bool:
    """Return True when a mention handle accepts mentions from ``channel_id``.

    Handles without a configured channel accept every channel.
    """

    filter_channel_id = handle_config.get("channelId")
    if not filter_channel_id:
        return True
    return filter_channel_id == channel_id
