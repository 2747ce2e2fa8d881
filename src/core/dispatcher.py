"""Core activity routing pipeline.

This module is integration-agnostic. It only relies on ports for storage,
the subscriber registry, and event emission.

The pipeline enforces a strict order:
1) Classify the activity
2) Fast-exit for ignored activities
3) Resolve candidates (index lookup, or the registry for mentions)
4) Liveness join against the registry, fetched fresh every time
5) Resolve each survivor's origin event
6) Emit one event per survivor and payload
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from core.classifier import ActivityClassifier
from core.errors import EventDeliveryError
from core.keys import matches_channel_filter, namespace_for, resolve_key_prefix
from core.models import (
    CAPABILITY_MENTIONS_SUBSCRIPTION,
    CAPABILITY_SEND_MESSAGE,
    CAPABILITY_THREAD_SUBSCRIPTION,
    Activity,
    Classification,
    ClassifiedActivity,
    RoutedEvent,
)
from core.payloads import action_payload, mention_payload, reaction_payloads, reply_payload
from core.ports import EventSinkPort, SubscriberRegistryPort
from core.subscriptions import SubscriptionIndex

LOGGER = logging.getLogger(__name__)

# Reaction and action events go to the secondary output of a sent message.
MESSAGE_EVENTS_OUTPUT = "events"

_CAPABILITY_BY_CLASSIFICATION = {
    Classification.ACTION: CAPABILITY_SEND_MESSAGE,
    Classification.REACTION: CAPABILITY_SEND_MESSAGE,
    Classification.REPLY: CAPABILITY_THREAD_SUBSCRIPTION,
}


class ActivityDispatcher:
    """Orchestrates classification, correlation lookup, filtering, and fan-out."""

    def __init__(
        self,
        classifier: ActivityClassifier,
        index: SubscriptionIndex,
        registry: SubscriberRegistryPort,
        sink: EventSinkPort,
    ) -> None:
        self._classifier = classifier
        self._index = index
        self._registry = registry
        self._sink = sink

    async def handle(self, activity: Activity) -> list[RoutedEvent]:
        """Process one inbound activity through the routing pipeline."""

        classified = self._classifier.classify(activity)
        LOGGER.debug(
            "Activity %s (%s) classified as %s",
            activity.id,
            activity.kind,
            classified.classification.value,
        )
        return await self.dispatch(classified)

    async def dispatch(self, classified: ClassifiedActivity) -> list[RoutedEvent]:
        """Route a classified activity and return the events delivered."""

        if classified.ignored:
            return []

        if classified.classification is Classification.MENTION:
            events = self._mention_events(classified)
        else:
            events = self._correlated_events(classified)

        if not events:
            return []
        return await self._deliver(classified, events)

    def _mention_events(self, classified: ClassifiedActivity) -> list[RoutedEvent]:
        handles = self._registry.list_by_capability(CAPABILITY_MENTIONS_SUBSCRIPTION)
        targets = [
            handle.id
            for handle in handles
            if matches_channel_filter(handle.config, classified.channel_id)
        ]
        if not targets:
            return []
        payload = mention_payload(classified)
        return [RoutedEvent(subscriber_id=target, payload=dict(payload)) for target in targets]

    def _correlated_events(self, classified: ClassifiedActivity) -> list[RoutedEvent]:
        namespace = namespace_for(classified.classification)
        if namespace is None or not classified.anchor:
            return []

        candidates = self._index.lookup(namespace, classified.anchor)
        if not candidates:
            return []

        # The index keeps stale references after a handle is deleted, so
        # membership is re-checked against the registry on every dispatch.
        capability = _CAPABILITY_BY_CLASSIFICATION[classified.classification]
        live = {handle.id for handle in self._registry.list_by_capability(capability)}
        survivors = sorted(candidates & live)
        if not survivors:
            LOGGER.debug("No live subscribers left under %s", resolve_key_prefix(classified))
            return []

        payloads, output_key = _payloads_for(classified)
        if not payloads:
            return []

        parents: dict[str, str] = {}
        for subscriber_id in survivors:
            parent_event_id = self._index.resolve_parent_event(subscriber_id, classified.anchor)
            if parent_event_id is None:
                continue
            parents[subscriber_id] = parent_event_id

        events: list[RoutedEvent] = []
        for payload in payloads:
            for subscriber_id, parent_event_id in parents.items():
                events.append(
                    RoutedEvent(
                        subscriber_id=subscriber_id,
                        payload=dict(payload),
                        parent_event_id=parent_event_id,
                        output_key=output_key,
                    )
                )
        return events

    async def _deliver(
        self, classified: ClassifiedActivity, events: list[RoutedEvent]
    ) -> list[RoutedEvent]:
        """Emit every event; one failing subscriber does not block the rest."""

        delivered: list[RoutedEvent] = []
        failures: list[tuple[RoutedEvent, Exception]] = []
        for event in events:
            try:
                await self._sink.emit(event)
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception(
                    "Delivery to %s failed for activity %s",
                    event.subscriber_id,
                    classified.activity.id,
                )
                failures.append((event, exc))
                continue
            delivered.append(event)

        if failures and not delivered:
            raise EventDeliveryError(
                f"All {len(failures)} deliveries failed for activity {classified.activity.id}: "
                + "; ".join(f"{event.subscriber_id}: {exc}" for event, exc in failures)
            )

        LOGGER.info(
            "Routed %s activity %s to %s event(s)",
            classified.classification.value,
            classified.activity.id,
            len(delivered),
        )
        return delivered


def _payloads_for(classified: ClassifiedActivity) -> tuple[list[dict[str, Any]], Optional[str]]:
    if classified.classification is Classification.REACTION:
        return reaction_payloads(classified), MESSAGE_EVENTS_OUTPUT
    if classified.classification is Classification.ACTION:
        return [action_payload(classified)], MESSAGE_EVENTS_OUTPUT
    return [reply_payload(classified)], None
