"""Static configuration for teams-relay.

All user-editable settings (bot endpoint, subscribers, event sink, logging)
live in a single JSON file for quick edits without touching Python. Secrets
come from the environment (or a .env file) instead.
"""

import json
import os

from dotenv import load_dotenv

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

load_dotenv(os.path.join(PROJECT_ROOT, ".env"))

# config.json sits at the project root unless TEAMS_RELAY_CONFIG points elsewhere.
CONFIG_PATH = os.getenv("TEAMS_RELAY_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Bot Framework credentials. The password is a client secret and never
# belongs in config.json.
APP_ID = os.getenv("MICROSOFT_APP_ID", "")
APP_PASSWORD = os.getenv("MICROSOFT_APP_PASSWORD", "")
TENANT_ID = os.getenv("MICROSOFT_TENANT_ID", "")

_bot = _CONFIG.get("bot", {})
# The default service URL works for all Teams regions.
SERVICE_URL = _bot.get("service_url", "https://smba.trafficmanager.net/teams/")
BOT_NAME = _bot.get("bot_name", "Relay Bot")

# Where to store the SQLite database holding subscriptions.
_storage = _CONFIG.get("storage", {})
DB_PATH = _storage.get("db_path", os.path.join(PROJECT_ROOT, "teams_relay.db"))
if not os.path.isabs(DB_PATH):
    DB_PATH = os.path.join(PROJECT_ROOT, DB_PATH)

# Event sink switches adapters without changing core logic.
# - method: "log" or "webhook"
# - webhook_url: required when method=webhook
_events = _CONFIG.get("events", {})
EVENT_SINK_METHOD = _events.get("method", "log")
EVENT_WEBHOOK_URL = _events.get("webhook_url", "")

_server = _CONFIG.get("server", {})
SERVER_HOST = _server.get("host", "0.0.0.0")
SERVER_PORT = int(_server.get("port", 3978))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})


def load_subscribers() -> list[dict]:
    """Re-read the subscriber list from disk.

    Called on every dispatch so removing a handle from config.json takes
    effect for the next activity.
    """

    return list(_load_json_config().get("subscribers", []))
