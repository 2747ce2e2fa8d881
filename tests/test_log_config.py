from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from log_config import RedactingFormatter, build_handlers, configure_logging, redaction_values


def _record(message: str) -> logging.LogRecord:
    return logging.LogRecord("relay", logging.INFO, __file__, 1, message, None, None)


def test_formatter_masks_secrets_and_bearer_tokens() -> None:
    formatter = RedactingFormatter(["s3cret", "s3cret-long", ""], fmt="%(message)s")

    message = formatter.format(_record("pw=s3cret-long auth=Bearer eyJ0.abc-def_1 token s3cret"))

    assert message == "pw=*** auth=Bearer *** token ***"


def test_redaction_values_read_listed_env_vars() -> None:
    config = {"redact": {"enabled": True, "patterns": ["A", "B", "MISSING"]}}

    assert redaction_values(config, {"A": "one", "B": ""}) == ["one"]
    assert redaction_values({"redact": {"enabled": False, "patterns": ["A"]}}, {"A": "one"}) == []


def test_build_handlers_writes_file_under_project_root(tmp_path) -> None:
    config = {
        "level": "debug",
        "console": False,
        "file": {"enabled": True, "path": "logs/relay.log", "max_bytes": 1024, "backup_count": 2},
    }

    handlers = build_handlers(config, str(tmp_path), RedactingFormatter([]))
    try:
        (handler,) = handlers
        assert isinstance(handler, RotatingFileHandler)
        assert handler.level == logging.DEBUG
        assert handler.maxBytes == 1024
        assert (tmp_path / "logs").is_dir()
    finally:
        for handler in handlers:
            handler.close()


def test_disabled_logging_installs_nothing(tmp_path) -> None:
    assert configure_logging(None, str(tmp_path)) is False
    assert configure_logging({"enabled": True, "console": False}, str(tmp_path)) is False
