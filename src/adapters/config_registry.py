"""Config-backed subscriber registry adapter.

Implements the core SubscriberRegistryPort from the ``subscribers`` list in
config.json. The list is read through a loader callable on every call so a
handle removed from the config stops receiving events without a restart.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from core.models import SubscriberHandle

LOGGER = logging.getLogger(__name__)


def build_handles(raw_subscribers: Iterable[dict]) -> list[SubscriberHandle]:
    """Normalize subscriber entries, skipping disabled or incomplete ones."""

    handles: list[SubscriberHandle] = []
    for entry in raw_subscribers:
        handle_id = entry.get("id")
        capability = entry.get("type")
        if not handle_id or not capability:
            LOGGER.warning("Skipping subscriber entry without id/type: %r", entry)
            continue
        if not entry.get("enabled", True):
            continue
        handles.append(
            SubscriberHandle(
                id=str(handle_id),
                capability=str(capability),
                config=dict(entry.get("config") or {}),
            )
        )
    return handles


class ConfigSubscriberRegistry:
    """Registry whose membership is whatever the loader currently returns."""

    def __init__(self, loader: Callable[[], Iterable[dict]]) -> None:
        self._loader = loader

    def list_by_capability(self, capability: str) -> list[SubscriberHandle]:
        return [handle for handle in build_handles(self._loader()) if handle.capability == capability]
