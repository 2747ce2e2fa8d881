"""Application entry point for the teams-relay webhook service."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional

from art import tprint

import settings
from adapters.activity_mapper import build_activity
from adapters.botframework_client import BotFrameworkClient
from adapters.config_registry import ConfigSubscriberRegistry
from adapters.event_sinks import LogEventSink, WebhookEventSink
from adapters.sqlite_storage import SQLiteKeyValueStore
from adapters.webhook import WebhookHandler
from core.classifier import ActivityClassifier
from core.config import BotConfig, EventSinkConfig
from core.dispatcher import ActivityDispatcher
from core.messaging import MessagingService
from core.ports import SHARED_SCOPE
from core.subscriptions import SubscriptionIndex
from log_config import configure_logging

NAME = "TEAMS RELAY"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


def _configure_logging() -> None:
    configure_logging(settings.LOGGING, settings.PROJECT_ROOT, secrets=[settings.APP_PASSWORD])


def _bot_config(strict: bool = True) -> BotConfig:
    # Fail fast on missing credentials when outbound calls need a token.
    if strict and not (settings.APP_ID and settings.APP_PASSWORD and settings.TENANT_ID):
        raise RuntimeError(
            "Missing MICROSOFT_APP_ID, MICROSOFT_APP_PASSWORD or MICROSOFT_TENANT_ID in environment"
        )
    return BotConfig(
        app_id=settings.APP_ID,
        app_password=settings.APP_PASSWORD,
        tenant_id=settings.TENANT_ID,
        service_url=settings.SERVICE_URL,
        bot_name=settings.BOT_NAME,
    )


def _build_sink(config: EventSinkConfig):
    # Select the sink adapter based on configuration to keep the dispatcher
    # independent from delivery details.
    if config.method == "webhook":
        if not config.webhook_url:
            raise RuntimeError("events.webhook_url is required when events.method=webhook")
        return WebhookEventSink(config.webhook_url)
    if config.method == "log":
        return LogEventSink()
    raise RuntimeError("events.method must be 'log' or 'webhook'")


def _open_index() -> tuple[SQLiteKeyValueStore, SubscriptionIndex]:
    storage = SQLiteKeyValueStore(settings.DB_PATH)
    storage.init_db()
    return storage, SubscriptionIndex(storage)


def _build_dispatcher(index: SubscriptionIndex, bot: BotConfig) -> ActivityDispatcher:
    sink_config = EventSinkConfig(
        method=settings.EVENT_SINK_METHOD,
        webhook_url=settings.EVENT_WEBHOOK_URL,
    )
    logging.getLogger(__name__).info("Selected event sink - %s", sink_config.method)
    return ActivityDispatcher(
        classifier=ActivityClassifier(bot.app_id),
        index=index,
        registry=ConfigSubscriberRegistry(settings.load_subscribers),
        sink=_build_sink(sink_config),
    )


def _make_request_handler(webhook: WebhookHandler) -> type[BaseHTTPRequestHandler]:
    logger = logging.getLogger(__name__)

    class _RequestHandler(BaseHTTPRequestHandler):
        def do_POST(self) -> None:  # noqa: N802
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length) if length else b""
            try:
                status, payload = asyncio.run(
                    webhook.handle_request(self.path, dict(self.headers.items()), body)
                )
            except Exception:
                logger.exception("Error while processing activity")
                status, payload = 500, {"error": "Internal error"}
            self._respond(status, payload)

        def _respond(self, status: int, payload: dict) -> None:
            data = json.dumps(payload).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def log_message(self, format: str, *args) -> None:  # noqa: A002
            logger.debug("%s - %s", self.address_string(), format % args)

    return _RequestHandler


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting teams-relay")

    bot = _bot_config()
    storage, index = _open_index()
    logger.info("%s subscriptions are tracked", storage.count_keys(SHARED_SCOPE))

    webhook = WebhookHandler(_build_dispatcher(index, bot))
    server = ThreadingHTTPServer(
        (settings.SERVER_HOST, settings.SERVER_PORT),
        _make_request_handler(webhook),
    )
    logger.info(
        "Listening for activities on http://%s:%s/messages",
        settings.SERVER_HOST,
        settings.SERVER_PORT,
    )
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.server_close()


def _replay(path: str) -> None:
    _configure_logging()
    with open(path, "r", encoding="utf-8") as handle:
        payload = json.load(handle)

    _, index = _open_index()
    dispatcher = _build_dispatcher(index, _bot_config(strict=False))
    routed = asyncio.run(dispatcher.handle(build_activity(payload)))
    print(f"Routed {len(routed)} event(s)")
    for event in routed:
        print(f"- {event.subscriber_id} (parent: {event.parent_event_id or '-'})")


def _send(args: argparse.Namespace) -> None:
    _configure_logging()
    _, index = _open_index()
    service = MessagingService(BotFrameworkClient(_bot_config()), index)
    cards = json.loads(args.cards) if args.cards else None
    result = service.send_message(
        subscriber_id=args.handle,
        event_id=args.event_id,
        channel_id=args.channel,
        text=args.text,
        cards=cards,
        conversation_id=args.conversation,
    )
    print(json.dumps(result, indent=2))


def _subscribe(args: argparse.Namespace) -> None:
    _configure_logging()
    _, index = _open_index()
    service = MessagingService(BotFrameworkClient(_bot_config(strict=False)), index)
    service.subscribe_to_replies(args.handle, args.event_id, args.conversation)
    print(f"{args.handle} subscribed to replies in {args.conversation}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="teams-relay")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Serve the Bot Framework messaging endpoint")

    replay = subparsers.add_parser("replay", help="Route a captured activity JSON file")
    replay.add_argument("path")

    send = subparsers.add_parser("send", help="Send a message as a subscriber handle")
    send.add_argument("--handle", required=True, help="Sending handle id")
    send.add_argument("--event-id", required=True, help="Origin event id for routed events")
    send.add_argument("--channel", required=True, help="Teams channel id (19:...)")
    send.add_argument("--text")
    send.add_argument("--cards", help="JSON array of Adaptive Card objects")
    send.add_argument("--conversation", help="Reply inside this conversation thread")

    subscribe = subparsers.add_parser("subscribe", help="Subscribe a handle to thread replies")
    subscribe.add_argument("--handle", required=True)
    subscribe.add_argument("--event-id", required=True)
    subscribe.add_argument("--conversation", required=True)

    args = parser.parse_args(argv)
    if args.command == "replay":
        _replay(args.path)
        return
    if args.command == "send":
        _send(args)
        return
    if args.command == "subscribe":
        _subscribe(args)
        return
    _run()


if __name__ == "__main__":
    main()
