"""Subscription index over the key-value store (core domain).

Registrations live in two places:
- the shared scope holds one ``True`` marker per correlation key, which
  makes registration idempotent and lookup a single prefix scan
- each handle's local scope maps anchor -> origin event id, written once so
  later registrations never move the parent routed events attach to
"""

from __future__ import annotations

import logging
from typing import Optional

from core.keys import CorrelationKey, Namespace, key_prefix
from core.ports import SHARED_SCOPE, KeyValueStorePort, handle_scope

LOGGER = logging.getLogger(__name__)


class SubscriptionIndex:
    """Read/write layer for correlation bookkeeping."""

    def __init__(self, store: KeyValueStorePort) -> None:
        self._store = store

    def register(
        self,
        namespace: Namespace,
        anchor: str,
        subscriber_id: str,
        origin_event_id: str,
    ) -> CorrelationKey:
        """Mark ``subscriber_id`` as interested in ``anchor``.

        No locking: the write-once check relies on the store giving
        read-after-write consistency per key.
        """

        if not anchor or not subscriber_id:
            raise ValueError(
                f"Cannot register {namespace.value} subscription with anchor={anchor!r} "
                f"subscriber={subscriber_id!r}"
            )
        key = CorrelationKey(namespace=namespace, anchor=anchor, subscriber_id=subscriber_id)
        scope = handle_scope(subscriber_id)
        if self._store.get(scope, anchor) is None:
            self._store.scoped_set(scope, anchor, origin_event_id)
        else:
            LOGGER.debug("Keeping existing origin event for %s on %s", subscriber_id, anchor)
        self._store.scoped_set(SHARED_SCOPE, key.encode(), True)
        LOGGER.info("Registered %s", key.encode())
        return key

    def lookup(self, namespace: Namespace, anchor: str) -> set[str]:
        """Return every subscriber id registered under ``anchor``."""

        prefix = key_prefix(namespace, anchor)
        subscribers: set[str] = set()
        for raw_key, _ in self._store.list_by_prefix(SHARED_SCOPE, prefix):
            key = CorrelationKey.decode(raw_key)
            if key is None:
                LOGGER.warning("Skipping malformed subscription key %r", raw_key)
                continue
            # Anchors may contain the separator, so a longer anchor can share our prefix.
            if key.anchor != anchor:
                continue
            subscribers.add(key.subscriber_id)
        return subscribers

    def resolve_parent_event(self, subscriber_id: str, anchor: str) -> Optional[str]:
        """Return the origin event recorded for this handle and anchor, if any."""

        value = self._store.get(handle_scope(subscriber_id), anchor)
        if value is None:
            return None
        return str(value)
