"""Normalized event payloads built from classified activities.

Keeping payload shapes here prevents drift between classifications and keeps
the field names subscribers see in one place.
"""

from __future__ import annotations

from typing import Any

from core.models import Activity, ClassifiedActivity

DEFAULT_ACTION_ID = "submit"


def _sender(activity: Activity) -> dict[str, Any]:
    return {
        "id": activity.sender.id,
        "name": activity.sender.name,
        "aadObjectId": activity.sender.aad_object_id,
    }


def mention_payload(classified: ClassifiedActivity) -> dict[str, Any]:
    activity = classified.activity
    return {
        "type": "mention",
        "text": activity.text,
        "senderId": activity.sender.id,
        "from": _sender(activity),
        "activityId": activity.id,
        "conversationId": activity.conversation_id,
        "channelId": classified.channel_id,
        "serviceUrl": activity.service_url,
        "timestamp": activity.timestamp,
    }


def reply_payload(classified: ClassifiedActivity) -> dict[str, Any]:
    activity = classified.activity
    return {
        "type": "reply",
        "text": activity.text,
        "attachments": [dict(attachment) for attachment in activity.attachments],
        "userId": activity.sender.id,
        "userName": activity.sender.name,
        "userAadObjectId": activity.sender.aad_object_id,
        "activityId": activity.id,
        "replyToId": classified.reply_to_id,
        "conversationId": activity.conversation_id,
        "timestamp": activity.timestamp,
    }


def _message_event_base(classified: ClassifiedActivity, event_type: str) -> dict[str, Any]:
    """Fields shared by reaction and action events on a sent message.

    ``activityId`` is the anchor (the message that was reacted to or whose
    card was submitted), not the id of the inbound activity.
    """

    activity = classified.activity
    return {
        "type": event_type,
        "userId": activity.sender.id,
        "userAadObjectId": activity.sender.aad_object_id,
        "activityId": classified.anchor,
        "conversationId": activity.conversation_id,
        "timestamp": activity.timestamp,
    }


def action_payload(classified: ClassifiedActivity) -> dict[str, Any]:
    activity = classified.activity
    payload = _message_event_base(classified, "action")
    payload["actionId"] = activity.name or DEFAULT_ACTION_ID
    payload["actionData"] = dict(activity.value or {})
    return payload


def reaction_payloads(classified: ClassifiedActivity) -> list[dict[str, Any]]:
    """Return one payload per reaction change, added before removed."""

    activity = classified.activity
    changes = [(reaction, "add") for reaction in activity.reactions_added]
    changes.extend((reaction, "remove") for reaction in activity.reactions_removed)

    payloads: list[dict[str, Any]] = []
    for reaction_type, action in changes:
        payload = _message_event_base(classified, "reaction")
        payload["reactionType"] = reaction_type
        payload["action"] = action
        payloads.append(payload)
    return payloads
