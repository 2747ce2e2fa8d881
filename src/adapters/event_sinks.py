"""Event sink adapters.

Both sinks implement the core EventSinkPort; the app selects one based on
configuration to keep the dispatcher independent from delivery details.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request

from core.errors import TransportError
from core.models import RoutedEvent

LOGGER = logging.getLogger(__name__)


def event_body(event: RoutedEvent) -> dict:
    """Return the JSON body describing one routed event."""

    return {
        "subscriberId": event.subscriber_id,
        "parentEventId": event.parent_event_id,
        "outputKey": event.output_key,
        "payload": event.payload,
    }


class LogEventSink:
    """Sink that writes routed events to the log, for local runs."""

    async def emit(self, event: RoutedEvent) -> None:
        LOGGER.info("Event for %s: %s", event.subscriber_id, json.dumps(event_body(event), sort_keys=True))


class WebhookEventSink:
    """Sink that POSTs each routed event to a downstream HTTP endpoint."""

    def __init__(self, url: str, timeout: float = 10) -> None:
        self._url = url
        self._timeout = timeout

    async def emit(self, event: RoutedEvent) -> None:
        data = json.dumps(event_body(event)).encode("utf-8")
        request = urllib.request.Request(self._url, data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        # Blocking call, same as the Bot Framework client; each webhook
        # request is served on its own thread.
        try:
            with urllib.request.urlopen(request, timeout=self._timeout):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise TransportError(f"Event sink error {e.code}: {body}", status=e.code) from e
