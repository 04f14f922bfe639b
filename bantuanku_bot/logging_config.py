"""Structured logging for the bot.

Every record is one JSON line on stdout. Call sites attach data with
``extra={"context": {...}}``; donor phone numbers in that context are masked
so conversation logs can be shared without exposing contacts.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

LOGGER_PREFIX = "bantuanku"

PHONE_KEYS = frozenset({"phone", "to", "whatsapp_number", "donor_phone"})

# Promoted out of context so log queries can filter on them directly.
TOP_LEVEL_KEYS = ("phone", "message_id", "transaction_number")

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine")


def mask_phone(value: Any) -> Any:
    """6281234567890 -> 6281*****7890. Short or non-string values pass through."""
    if not isinstance(value, str) or len(value) < 8:
        return value
    return value[:4] + "*" * (len(value) - 8) + value[-4:]


class JSONFormatter(logging.Formatter):
    def __init__(self, mask_phones: bool = True):
        super().__init__()
        self.mask_phones = mask_phones

    def _clean_context(self, context: dict) -> dict:
        if not self.mask_phones:
            return dict(context)
        return {key: mask_phone(value) if key in PHONE_KEYS else value for key, value in context.items()}

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            context = self._clean_context(context)
            for key in TOP_LEVEL_KEYS:
                if key in context:
                    entry[key] = context.pop(key)
            if context:
                entry["context"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", mask_phones: bool = True) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(mask_phones=mask_phones))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")
