"""Structured logging for replyguard.

Every decision the pipeline makes (cache hit, block, auto-correction, auto-reply)
is logged against a tenant and a conversation, so those two ids are promoted to
top-level JSON fields where log queries can filter on them.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, MutableMapping, Optional

LOGGER_PREFIX = "replyguard"
SCOPE_FIELDS = ("tenant_id", "conversation_id")
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = dict(getattr(record, "context", None) or {})
        for field in SCOPE_FIELDS:
            if field in context:
                entry[field] = context.pop(field)
        if context:
            entry["context"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    numeric_level = getattr(logging, level.upper(), None)
    root.setLevel(numeric_level if isinstance(numeric_level, int) else logging.INFO)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


class ConversationLogger(logging.LoggerAdapter):
    """Logger bound to one tenant and conversation.

    Call sites pass per-event fields as ``context={...}``; they are merged over
    the bound scope.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        context = {**self.extra, **(kwargs.pop("context", None) or {})}
        extra = dict(kwargs.get("extra") or {})
        extra["context"] = {**extra.get("context", {}), **context}
        kwargs["extra"] = extra
        return msg, kwargs


def conversation_logger(logger: logging.Logger, tenant_id: str, conversation_id: Optional[Any]) -> ConversationLogger:
    return ConversationLogger(logger, {"tenant_id": tenant_id, "conversation_id": str(conversation_id)})
