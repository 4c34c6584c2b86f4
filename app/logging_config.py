"""JSON logging configuration for the lead funnel API.

Log lines carry WhatsApp phone numbers in their context (``sender``, ``to``).
The formatter masks the middle digits of those values; the record itself is
left untouched, so handlers attached in tests still see the full number.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Context keys whose value is a WhatsApp phone number.
PHONE_CONTEXT_KEYS = frozenset({"sender", "to", "recipient"})


def mask_phone(value: Any) -> Any:
    """5511987654321 -> 5511*****4321. Short test ids pass through."""
    if not isinstance(value, str) or len(value) <= 8:
        return value
    return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"


class JSONFormatter(logging.Formatter):
    """One JSON object per line, phone numbers in the context masked."""

    def __init__(self, mask_phone_numbers: bool = True):
        super().__init__()
        self.mask_phone_numbers = mask_phone_numbers

    def _context(self, context: dict[str, Any]) -> dict[str, Any]:
        if not self.mask_phone_numbers:
            return context
        return {key: mask_phone(value) if key in PHONE_CONTEXT_KEYS else value for key, value in context.items()}

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            log_data["context"] = self._context(context) if isinstance(context, dict) else context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", mask_phone_numbers: bool = True) -> None:
    """Configure JSON logging for the application."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(mask_phone_numbers=mask_phone_numbers))
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the leadfunnel namespace."""
    return logging.getLogger(f"leadfunnel.{name}")


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that merges a fixed context (e.g. the sender) into every record."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = kwargs.pop("context", None)
        if context or self.extra:
            combined_context = {**self.extra, **(context or {})}
            kwargs["extra"] = {"context": combined_context}
        return msg, kwargs
