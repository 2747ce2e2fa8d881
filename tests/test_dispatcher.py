from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

from core.classifier import ActivityClassifier
from core.errors import EventDeliveryError
from core.keys import Namespace
from core.models import (
    ACTIVITY_CONVERSATION_UPDATE,
    ACTIVITY_MESSAGE,
    ACTIVITY_REACTION,
    CAPABILITY_MENTIONS_SUBSCRIPTION,
    CAPABILITY_SEND_MESSAGE,
    CAPABILITY_THREAD_SUBSCRIPTION,
    Activity,
    ChannelAccount,
    RoutedEvent,
    SubscriberHandle,
)
from core.dispatcher import ActivityDispatcher
from core.subscriptions import SubscriptionIndex

BOT_APP_ID = "bot-app-1"


class FakeKeyValueStore:
    def __init__(self) -> None:
        self.data: dict[str, dict[str, Any]] = {}

    def scoped_set(self, scope: str, key: str, value: Any) -> None:
        self.data.setdefault(scope, {})[key] = value

    def get(self, scope: str, key: str) -> Optional[Any]:
        return self.data.get(scope, {}).get(key)

    def list_by_prefix(self, scope: str, prefix: str) -> list[tuple[str, Any]]:
        items = self.data.get(scope, {})
        return sorted((key, value) for key, value in items.items() if key.startswith(prefix))


class UnavailableStore(FakeKeyValueStore):
    def list_by_prefix(self, scope: str, prefix: str) -> list[tuple[str, Any]]:
        raise ConnectionError("store unavailable")


class FakeRegistry:
    def __init__(self) -> None:
        self.handles: list[SubscriberHandle] = []
        self.calls: list[str] = []

    def add(self, handle_id: str, capability: str, **config: Any) -> None:
        self.handles.append(SubscriberHandle(id=handle_id, capability=capability, config=config))

    def remove(self, handle_id: str) -> None:
        self.handles = [handle for handle in self.handles if handle.id != handle_id]

    def list_by_capability(self, capability: str) -> list[SubscriberHandle]:
        self.calls.append(capability)
        return [handle for handle in self.handles if handle.capability == capability]


class FakeSink:
    def __init__(self, failing: Optional[set[str]] = None) -> None:
        self.emitted: list[RoutedEvent] = []
        self._failing = failing or set()

    async def emit(self, event: RoutedEvent) -> None:
        if event.subscriber_id in self._failing:
            raise RuntimeError(f"sink down for {event.subscriber_id}")
        self.emitted.append(event)


def _build(
    store: Optional[FakeKeyValueStore] = None, sink: Optional[FakeSink] = None
) -> tuple[ActivityDispatcher, SubscriptionIndex, FakeRegistry, FakeSink]:
    index = SubscriptionIndex(store or FakeKeyValueStore())
    registry = FakeRegistry()
    sink = sink or FakeSink()
    dispatcher = ActivityDispatcher(
        classifier=ActivityClassifier(BOT_APP_ID),
        index=index,
        registry=registry,
        sink=sink,
    )
    return dispatcher, index, registry, sink


def _activity(**overrides: Any) -> Activity:
    fields: dict[str, Any] = {
        "kind": ACTIVITY_MESSAGE,
        "id": "5",
        "conversation_id": "19:conv@thread.tacv2",
        "sender": ChannelAccount(id="user1", name="User One", aad_object_id="aad-1"),
        "text": "hi",
        "timestamp": "2024-01-01T00:00:00Z",
    }
    fields.update(overrides)
    return Activity(**fields)


def test_action_reply_routes_to_sender_with_parent() -> None:
    dispatcher, index, registry, sink = _build()
    registry.add("blockX", CAPABILITY_SEND_MESSAGE)
    index.register(Namespace.EVENTS, "3", "blockX", "evtP")

    activity = _activity(id="5", reply_to_id="3", value={"approve": True})
    routed = asyncio.run(dispatcher.handle(activity))

    assert routed == sink.emitted
    assert len(sink.emitted) == 1
    event = sink.emitted[0]
    assert event.subscriber_id == "blockX"
    assert event.parent_event_id == "evtP"
    assert event.output_key == "events"
    assert event.payload["actionId"] == "submit"
    assert event.payload["actionData"] == {"approve": True}
    assert event.payload["activityId"] == "3"


def test_action_uses_activity_name_when_present() -> None:
    dispatcher, index, registry, sink = _build()
    registry.add("blockX", CAPABILITY_SEND_MESSAGE)
    index.register(Namespace.EVENTS, "3", "blockX", "evtP")

    activity = _activity(reply_to_id="3", value={"choice": "a"}, name="approve")
    asyncio.run(dispatcher.handle(activity))

    assert sink.emitted[0].payload["actionId"] == "approve"


def test_reaction_fans_out_to_every_live_subscriber() -> None:
    dispatcher, index, registry, sink = _build()
    for handle_id, origin in (("blockA", "evtA"), ("blockB", "evtB")):
        registry.add(handle_id, CAPABILITY_SEND_MESSAGE)
        index.register(Namespace.EVENTS, "7", handle_id, origin)

    activity = _activity(kind=ACTIVITY_REACTION, id="8", reply_to_id="7", reactions_added=("like",))
    asyncio.run(dispatcher.handle(activity))

    assert len(sink.emitted) == 2
    assert {event.subscriber_id for event in sink.emitted} == {"blockA", "blockB"}
    assert {event.parent_event_id for event in sink.emitted} == {"evtA", "evtB"}
    for event in sink.emitted:
        assert event.payload["reactionType"] == "like"
        assert event.payload["action"] == "add"


def test_reaction_changes_are_emitted_individually_added_first() -> None:
    dispatcher, index, registry, sink = _build()
    registry.add("blockA", CAPABILITY_SEND_MESSAGE)
    index.register(Namespace.EVENTS, "7", "blockA", "evtA")

    activity = _activity(
        kind=ACTIVITY_REACTION,
        reply_to_id="7",
        reactions_added=("like", "heart"),
        reactions_removed=("laugh",),
    )
    asyncio.run(dispatcher.handle(activity))

    changes = [(event.payload["reactionType"], event.payload["action"]) for event in sink.emitted]
    assert changes == [("like", "add"), ("heart", "add"), ("laugh", "remove")]


def test_stale_subscriber_is_filtered_at_dispatch_time() -> None:
    dispatcher, index, registry, sink = _build()
    for handle_id in ("S1", "S2"):
        registry.add(handle_id, CAPABILITY_SEND_MESSAGE)
        index.register(Namespace.EVENTS, "A", handle_id, f"evt-{handle_id}")
    registry.remove("S2")

    activity = _activity(kind=ACTIVITY_REACTION, reply_to_id="A", reactions_added=("like",))
    asyncio.run(dispatcher.handle(activity))

    assert [event.subscriber_id for event in sink.emitted] == ["S1"]


def test_registry_is_consulted_on_every_dispatch() -> None:
    dispatcher, index, registry, sink = _build()
    registry.add("S1", CAPABILITY_SEND_MESSAGE)
    index.register(Namespace.EVENTS, "A", "S1", "evt-1")
    activity = _activity(kind=ACTIVITY_REACTION, reply_to_id="A", reactions_added=("like",))

    asyncio.run(dispatcher.handle(activity))
    registry.remove("S1")
    asyncio.run(dispatcher.handle(activity))

    assert len(sink.emitted) == 1
    assert registry.calls == [CAPABILITY_SEND_MESSAGE, CAPABILITY_SEND_MESSAGE]


def test_wrong_capability_is_not_live() -> None:
    dispatcher, index, registry, sink = _build()
    # A thread subscriber id registered under message events does not qualify.
    registry.add("thread-a", CAPABILITY_THREAD_SUBSCRIPTION)
    index.register(Namespace.EVENTS, "7", "thread-a", "evt-1")

    activity = _activity(kind=ACTIVITY_REACTION, reply_to_id="7", reactions_added=("like",))

    assert asyncio.run(dispatcher.handle(activity)) == []


def test_reply_routes_to_thread_subscribers() -> None:
    dispatcher, index, registry, sink = _build()
    registry.add("thread-a", CAPABILITY_THREAD_SUBSCRIPTION)
    index.register(Namespace.REPLIES, "19:conv@thread.tacv2", "thread-a", "evt-sub")

    activity = _activity(
        id="12",
        reply_to_id="10",
        text="sounds good",
        attachments=({"contentType": "image/png"},),
    )
    asyncio.run(dispatcher.handle(activity))

    assert len(sink.emitted) == 1
    event = sink.emitted[0]
    assert event.parent_event_id == "evt-sub"
    assert event.output_key is None
    assert event.payload["text"] == "sounds good"
    assert event.payload["attachments"] == [{"contentType": "image/png"}]
    assert event.payload["userId"] == "user1"
    assert event.payload["userName"] == "User One"
    assert event.payload["userAadObjectId"] == "aad-1"
    assert event.payload["activityId"] == "12"


def test_missing_parent_event_drops_subscriber() -> None:
    store = FakeKeyValueStore()
    dispatcher, index, registry, sink = _build(store=store)
    registry.add("blockX", CAPABILITY_SEND_MESSAGE)
    # Marker without an origin event, e.g. written by an older deployment.
    store.scoped_set("shared", "events|3|blockX", True)

    activity = _activity(reply_to_id="3", value={"approve": True})

    assert asyncio.run(dispatcher.handle(activity)) == []
    assert sink.emitted == []


def test_unregistered_anchor_is_a_silent_no_op() -> None:
    dispatcher, _, registry, sink = _build()
    registry.add("blockX", CAPABILITY_SEND_MESSAGE)

    activity = _activity(kind=ACTIVITY_REACTION, reply_to_id="404", reactions_added=("like",))

    assert asyncio.run(dispatcher.handle(activity)) == []
    # No candidates means the registry is never needed.
    assert registry.calls == []


def test_ignored_activity_is_a_no_op() -> None:
    dispatcher, _, registry, sink = _build()

    assert asyncio.run(dispatcher.handle(_activity(kind=ACTIVITY_CONVERSATION_UPDATE))) == []
    assert registry.calls == []
    assert sink.emitted == []


def test_mention_respects_channel_filter() -> None:
    dispatcher, _, registry, sink = _build()
    registry.add("S1", CAPABILITY_MENTIONS_SUBSCRIPTION, channelId="19:abc")
    registry.add("S2", CAPABILITY_MENTIONS_SUBSCRIPTION)

    activity = _activity(
        entities=({"type": "mention", "mentioned": {"id": f"28:{BOT_APP_ID}"}},),
        channel_data={"teamsChannelId": "19:xyz"},
        service_url="https://smba.example/teams/",
    )
    asyncio.run(dispatcher.handle(activity))

    assert [event.subscriber_id for event in sink.emitted] == ["S2"]
    event = sink.emitted[0]
    assert event.parent_event_id is None
    assert event.payload["channelId"] == "19:xyz"
    assert event.payload["senderId"] == "user1"
    assert event.payload["activityId"] == "5"
    assert event.payload["conversationId"] == "19:conv@thread.tacv2"
    assert event.payload["serviceUrl"] == "https://smba.example/teams/"


def test_mention_without_subscribers_is_a_no_op() -> None:
    dispatcher, _, registry, sink = _build()
    registry.add("S1", CAPABILITY_MENTIONS_SUBSCRIPTION, channelId="19:abc")

    activity = _activity(
        entities=({"type": "mention", "mentioned": {"id": f"28:{BOT_APP_ID}"}},),
        channel_data={"teamsChannelId": "19:other"},
    )

    assert asyncio.run(dispatcher.handle(activity)) == []


def test_one_failing_subscriber_does_not_block_others() -> None:
    dispatcher, index, registry, sink = _build(sink=FakeSink(failing={"blockA"}))
    for handle_id in ("blockA", "blockB"):
        registry.add(handle_id, CAPABILITY_SEND_MESSAGE)
        index.register(Namespace.EVENTS, "7", handle_id, f"evt-{handle_id}")

    activity = _activity(kind=ACTIVITY_REACTION, reply_to_id="7", reactions_added=("like",))
    routed = asyncio.run(dispatcher.handle(activity))

    assert [event.subscriber_id for event in routed] == ["blockB"]


def test_all_deliveries_failing_raises() -> None:
    dispatcher, index, registry, _ = _build(sink=FakeSink(failing={"blockA"}))
    registry.add("blockA", CAPABILITY_SEND_MESSAGE)
    index.register(Namespace.EVENTS, "7", "blockA", "evt-1")

    activity = _activity(kind=ACTIVITY_REACTION, reply_to_id="7", reactions_added=("like",))

    with pytest.raises(EventDeliveryError):
        asyncio.run(dispatcher.handle(activity))


def test_store_failure_propagates() -> None:
    dispatcher, _, registry, sink = _build(store=UnavailableStore())
    registry.add("blockA", CAPABILITY_SEND_MESSAGE)

    activity = _activity(kind=ACTIVITY_REACTION, reply_to_id="7", reactions_added=("like",))

    with pytest.raises(ConnectionError):
        asyncio.run(dispatcher.handle(activity))
    assert sink.emitted == []
