"""Inbound webhook request handling.

Framework-free: the HTTP server hands over path, headers, and raw body and
gets back a status code and JSON body. Activity routing itself lives in the
core dispatcher.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from adapters.activity_mapper import build_activity
from core.dispatcher import ActivityDispatcher

LOGGER = logging.getLogger(__name__)

MESSAGES_PATH = "/messages"


def _header(headers: Mapping[str, str], name: str) -> str:
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return ""


def is_bot_framework_request(auth_header: str) -> bool:
    """Accept Bot Framework bearer tokens.

    Only the scheme is checked; signature validation against the Bot
    Framework OpenID keys belongs to a fronting gateway.
    """

    return auth_header.startswith("Bearer ")


class WebhookHandler:
    """Maps webhook requests onto the activity dispatcher."""

    def __init__(self, dispatcher: ActivityDispatcher) -> None:
        self._dispatcher = dispatcher

    async def handle_request(
        self, path: str, headers: Mapping[str, str], body: bytes
    ) -> tuple[int, dict[str, Any]]:
        if path != MESSAGES_PATH and not path.endswith(MESSAGES_PATH):
            LOGGER.warning("Received request on unhandled HTTP path: %s", path)
            return 404, {"error": "Endpoint not found"}

        auth_header = _header(headers, "Authorization")
        if not auth_header:
            LOGGER.error("Missing authorization header")
            return 401, {"error": "Missing authorization"}
        if not is_bot_framework_request(auth_header):
            LOGGER.error("Invalid Bot Framework authorization")
            return 403, {"error": "Invalid authorization"}

        try:
            payload = json.loads(body.decode("utf-8") or "null")
        except (UnicodeDecodeError, json.JSONDecodeError):
            return 400, {"error": "Invalid JSON body"}

        await self._dispatcher.handle(build_activity(payload))
        return 200, {}
