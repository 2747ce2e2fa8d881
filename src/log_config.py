"""Logging setup for the relay: console and rotating file output with redaction."""

from __future__ import annotations

import logging
import os
import re
from logging.handlers import RotatingFileHandler
from typing import Iterable, Mapping, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_PATH = "logs/teams_relay.log"
REDACTED = "***"

# Connector and inbound tokens can end up in transport error messages.
_BEARER_TOKEN = re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+")


class RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: Iterable[str], fmt: str = LOG_FORMAT, datefmt: Optional[str] = DATE_FORMAT) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        # Longest first so a secret containing another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = _BEARER_TOKEN.sub(rf"\g<1>{REDACTED}", super().format(record))
        for secret in self._secrets:
            message = message.replace(secret, REDACTED)
        return message


def redaction_values(config: Mapping, environ: Optional[Mapping[str, str]] = None) -> list[str]:
    """Values of the env vars listed under ``redact.patterns`` when redaction is on."""

    environ = os.environ if environ is None else environ
    redact = config.get("redact") or {}
    if not redact.get("enabled", False):
        return []
    return [environ[name] for name in redact.get("patterns", []) if environ.get(name)]


def build_handlers(config: Mapping, project_root: str, formatter: logging.Formatter) -> list[logging.Handler]:
    level = resolve_level(config)
    handlers: list[logging.Handler] = []

    if config.get("console", True):
        handlers.append(logging.StreamHandler())

    file_cfg = config.get("file") or {}
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", DEFAULT_LOG_PATH)
        if not os.path.isabs(path):
            path = os.path.join(project_root, path)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                path,
                maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
                backupCount=int(file_cfg.get("backup_count", 5)),
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def resolve_level(config: Mapping) -> int:
    return getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)


def configure_logging(config: Optional[Mapping], project_root: str, secrets: Iterable[str] = ()) -> bool:
    """Install handlers from the ``logging`` config section.

    ``secrets`` are always masked, on top of whatever ``redact.patterns``
    names. Returns False when logging is disabled or no handler is enabled.
    """

    config = config or {}
    if not config.get("enabled", False):
        return False

    formatter = RedactingFormatter([*secrets, *redaction_values(config)])
    handlers = build_handlers(config, project_root, formatter)
    if not handlers:
        return False

    logging.basicConfig(level=resolve_level(config), handlers=handlers)
    return True
