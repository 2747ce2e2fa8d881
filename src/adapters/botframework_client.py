"""Bot Framework REST adapter.

Implements the core MessageTransportPort against the Bot Connector API,
authenticating with the client-credentials flow of the bot's Azure AD app.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Optional

from core.config import BotConfig
from core.errors import TransportError

LOGGER = logging.getLogger(__name__)

TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
TOKEN_SCOPE = "https://api.botframework.com/.default"
# Refresh a little before the platform-reported expiry.
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class BotFrameworkClient:
    """Adapter that sends, updates, and deletes messages via the Bot Connector API."""

    def __init__(self, config: BotConfig, timeout: float = 10) -> None:
        self._config = config
        self._timeout = timeout
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    def _service_url(self) -> str:
        return self._config.service_url.rstrip("/")

    def _activity_url(self, conversation_id: str, activity_id: str) -> str:
        return (
            f"{self._service_url()}/v3/conversations/"
            f"{urllib.parse.quote(conversation_id, safe='')}/activities/"
            f"{urllib.parse.quote(activity_id, safe='')}"
        )

    def _open(self, request: urllib.request.Request, action: str) -> Any:
        # Blocking call: each webhook request runs in its own server thread.
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            detail = e.read().decode("utf-8", errors="replace")
            raise TransportError(f"Failed to {action}: {e.code} {detail}", status=e.code) from e
        except urllib.error.URLError as e:
            raise TransportError(f"Failed to {action}: {e.reason}") from e
        if not body:
            return None
        return json.loads(body)

    def get_access_token(self) -> str:
        """Return a cached bearer token, fetching a new one when it expired."""

        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        form = urllib.parse.urlencode(
            {
                "grant_type": "client_credentials",
                "client_id": self._config.app_id,
                "client_secret": self._config.app_password,
                "scope": TOKEN_SCOPE,
            }
        ).encode("utf-8")
        request = urllib.request.Request(
            TOKEN_URL_TEMPLATE.format(tenant_id=self._config.tenant_id),
            data=form,
            method="POST",
        )
        request.add_header("Content-Type", "application/x-www-form-urlencoded")
        data = self._open(request, "get bot token") or {}

        token = data.get("access_token")
        if not token:
            raise TransportError("Failed to get bot token: response had no access_token")
        expires_in = int(data.get("expires_in", 3600))
        self._token = token
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 0)
        LOGGER.info("Acquired Bot Framework token (expires in %ss)", expires_in)
        return token

    def _api_request(
        self,
        method: str,
        url: str,
        action: str,
        payload: Optional[dict] = None,
    ) -> Any:
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        request = urllib.request.Request(url, data=data, method=method)
        request.add_header("Authorization", f"Bearer {self.get_access_token()}")
        if data is not None:
            request.add_header("Content-Type", "application/json")
        return self._open(request, action)

    def send(
        self,
        channel_id: str,
        text: Optional[str],
        attachments: Optional[list[dict]],
        conversation_id: Optional[str] = None,
    ) -> tuple[str, str]:
        """Post into an existing conversation, or start a new channel conversation."""

        activity = build_message_activity(text, attachments)

        if conversation_id:
            url = (
                f"{self._service_url()}/v3/conversations/"
                f"{urllib.parse.quote(conversation_id, safe='')}/activities"
            )
            result = self._api_request("POST", url, "send reply to thread", activity) or {}
            return _require_activity_id(result.get("id"), "send reply to thread"), conversation_id

        params = {
            "bot": {"id": self._config.app_id, "name": self._config.bot_name},
            "isGroup": True,
            "channelData": {"channel": {"id": channel_id}},
            "tenantId": self._config.tenant_id,
            "activity": activity,
        }
        url = f"{self._service_url()}/v3/conversations"
        result = self._api_request("POST", url, "send message to channel", params) or {}
        activity_id = _require_activity_id(result.get("activityId"), "send message to channel")
        return activity_id, str(result.get("id", ""))

    def update(
        self,
        conversation_id: str,
        activity_id: str,
        text: Optional[str],
        attachments: Optional[list[dict]],
    ) -> None:
        activity = build_message_activity(text, attachments)
        self._api_request("PUT", self._activity_url(conversation_id, activity_id), "update message", activity)

    def delete(self, conversation_id: str, activity_id: str) -> None:
        self._api_request("DELETE", self._activity_url(conversation_id, activity_id), "delete message")

    def get_member(self, conversation_id: str, user_id: str) -> dict:
        url = (
            f"{self._service_url()}/v3/conversations/"
            f"{urllib.parse.quote(conversation_id, safe='')}/members/"
            f"{urllib.parse.quote(user_id, safe='')}"
        )
        return self._api_request("GET", url, "fetch user info") or {}


def build_message_activity(text: Optional[str], attachments: Optional[list[dict]]) -> dict[str, Any]:
    """Return the message activity body sent to the Bot Connector API."""

    activity: dict[str, Any] = {"type": "message"}
    if text:
        activity["text"] = text
        activity["textFormat"] = "markdown"
    if attachments:
        activity["attachments"] = attachments
    return activity


def _require_activity_id(value: Any, action: str) -> str:
    activity_id = str(value or "")
    if not activity_id:
        raise TransportError(f"Failed to {action}: response had no activity id")
    return activity_id
