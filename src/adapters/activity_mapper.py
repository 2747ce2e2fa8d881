"""Bot Framework-to-core activity mapping adapter.

This keeps Bot Framework JSON details out of the core pipeline. Mapping is
best-effort: missing or oddly typed fields become empty values so the
classifier can ignore the activity instead of failing the request.
"""

from __future__ import annotations

from typing import Any, Optional

from core.models import Activity, ChannelAccount


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _reaction_types(raw_reactions: Any) -> tuple[str, ...]:
    types: list[str] = []
    for reaction in _as_list(raw_reactions):
        reaction_type = _as_dict(reaction).get("type")
        if reaction_type:
            types.append(str(reaction_type))
    return tuple(types)


def _sender(raw_from: Any) -> ChannelAccount:
    data = _as_dict(raw_from)
    return ChannelAccount(
        id=_as_str(data.get("id")) or "",
        name=_as_str(data.get("name")),
        aad_object_id=_as_str(data.get("aadObjectId")),
    )


def _action_value(raw_value: Any) -> Optional[dict[str, Any]]:
    # Card submissions carry an object; anything else is not action data.
    if isinstance(raw_value, dict):
        return raw_value
    return None


def build_activity(payload: Any) -> Activity:
    """Build a core Activity from a decoded Bot Framework activity body."""

    data = _as_dict(payload)
    conversation = _as_dict(data.get("conversation"))

    return Activity(
        kind=_as_str(data.get("type")) or "",
        id=_as_str(data.get("id")) or "",
        conversation_id=_as_str(conversation.get("id")) or "",
        sender=_sender(data.get("from")),
        text=_as_str(data.get("text")) or "",
        reply_to_id=_as_str(data.get("replyToId")) or None,
        value=_action_value(data.get("value")),
        name=_as_str(data.get("name")),
        reactions_added=_reaction_types(data.get("reactionsAdded")),
        reactions_removed=_reaction_types(data.get("reactionsRemoved")),
        entities=tuple(_as_dict(entity) for entity in _as_list(data.get("entities"))),
        channel_data=_as_dict(data.get("channelData")),
        attachments=tuple(_as_dict(item) for item in _as_list(data.get("attachments"))),
        timestamp=_as_str(data.get("timestamp")),
        service_url=_as_str(data.get("serviceUrl")),
    )
