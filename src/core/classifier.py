"""Activity classification logic (core domain)."""

from __future__ import annotations

import re
from typing import Optional, Protocol

from core.models import (
    ACTIVITY_INVOKE,
    ACTIVITY_MESSAGE,
    ACTIVITY_REACTION,
    Activity,
    Classification,
    ClassifiedActivity,
)

# Bot identities on Teams are reported as "28:<app id>".
BOT_ID_PREFIX = "28:"

_MESSAGE_ID_PATTERN = re.compile(r";messageid=(\d+)")


class ReplyTargetResolver(Protocol):
    """Strategy that decides which earlier activity a message replies to."""

    def resolve(self, activity: Activity) -> Optional[str]:
        ...


class TeamsReplyTargetResolver:
    """Reply detection for Teams channel threads.

    Teams does not always fill ``replyToId`` for channel replies. The thread
    root is then encoded in the conversation id as ``;messageid=<id>``; a
    message whose own id equals that root is the root itself, not a reply.
    """

    def resolve(self, activity: Activity) -> Optional[str]:
        explicit = explicit_reply_target(activity)
        if explicit:
            return explicit
        if not activity.conversation_id or not activity.id:
            return None
        match = _MESSAGE_ID_PATTERN.search(activity.conversation_id)
        if not match:
            return None
        message_id = match.group(1)
        if message_id == activity.id:
            return None
        return message_id


def explicit_reply_target(activity: Activity) -> Optional[str]:
    """Return ``replyToId`` unless the activity points at itself."""

    if not activity.reply_to_id or activity.reply_to_id == activity.id:
        return None
    return activity.reply_to_id


def is_bot_mentioned(activity: Activity) -> bool:
    for entity in activity.entities:
        if entity.get("type") != "mention":
            continue
        mentioned = entity.get("mentioned")
        if not isinstance(mentioned, dict):
            continue
        if BOT_ID_PREFIX in str(mentioned.get("id") or ""):
            return True
    return False


def bot_app_id(bot_id: str) -> str:
    """Strip the platform prefix from a bot id, leaving the numeric app id."""

    if bot_id.startswith(BOT_ID_PREFIX):
        return bot_id[len(BOT_ID_PREFIX):]
    return bot_id


class ActivityClassifier:
    """Maps a raw activity to exactly one routing classification.

    Order of precedence for messages: mention, own-reply suppression,
    action (reply carrying card data), plain reply. Reactions and invokes
    only route when they carry an explicit ``replyToId``.
    """

    def __init__(self, bot_id: str, reply_resolver: Optional[ReplyTargetResolver] = None) -> None:
        self._bot_app_id = bot_app_id(bot_id)
        self._reply_resolver = reply_resolver or TeamsReplyTargetResolver()

    def classify(self, activity: Activity) -> ClassifiedActivity:
        if activity.kind == ACTIVITY_MESSAGE:
            return self._classify_message(activity)

        if activity.kind == ACTIVITY_REACTION:
            return _anchored(Classification.REACTION, activity, explicit_reply_target(activity))

        if activity.kind == ACTIVITY_INVOKE:
            return _anchored(Classification.ACTION, activity, explicit_reply_target(activity))

        return _ignored(activity)

    def _classify_message(self, activity: Activity) -> ClassifiedActivity:
        if is_bot_mentioned(activity):
            return ClassifiedActivity(
                classification=Classification.MENTION,
                activity=activity,
                channel_id=activity.teams_channel_id,
            )

        reply_to_id = self._reply_resolver.resolve(activity)
        if not reply_to_id or reply_to_id == activity.id:
            return _ignored(activity)

        # Our own thread replies come back through the webhook; routing them
        # would loop.
        if self._is_from_bot(activity):
            return _ignored(activity)

        if activity.value:
            return _anchored(Classification.ACTION, activity, reply_to_id)

        # Thread subscriptions are registered per conversation, not per message.
        if not activity.conversation_id:
            return _ignored(activity)
        return ClassifiedActivity(
            classification=Classification.REPLY,
            activity=activity,
            anchor=activity.conversation_id,
            reply_to_id=reply_to_id,
        )

    def _is_from_bot(self, activity: Activity) -> bool:
        sender_id = activity.sender.id
        if not sender_id or not self._bot_app_id:
            return False
        return self._bot_app_id in sender_id


def _ignored(activity: Activity) -> ClassifiedActivity:
    return ClassifiedActivity(classification=Classification.IGNORED, activity=activity)


def _anchored(
    classification: Classification, activity: Activity, reply_to_id: Optional[str]
) -> ClassifiedActivity:
    """Classify against the replied-to activity, or ignore without one."""

    if not reply_to_id:
        return _ignored(activity)
    return ClassifiedActivity(
        classification=classification,
        activity=activity,
        anchor=reply_to_id,
        reply_to_id=reply_to_id,
    )
