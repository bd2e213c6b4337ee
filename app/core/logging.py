import json
import logging
from logging.handlers import RotatingFileHandler
from datetime import datetime, timezone

from app.core.config import settings


class JsonFormatter(logging.Formatter):
    """JSON log formatter with support for extra fields."""

    # Fields to extract from log record's extra dict
    EXTRA_FIELDS = (
        "user_id", "telegram_id", "chat_id", "request_id", "path", "method",
        "status_code", "provider", "transaction_id", "tier", "months",
        "end_date", "outcome", "error", "breaker_name", "old_state", "new_state",
        "hook", "count", "reason", "status", "amount", "correlation",
        "checked", "removed", "skipped_staff", "failed", "sent",
    )

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> None:
    formatter = JsonFormatter()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    handlers = [handler]
    if settings.log_file:
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)
    root.handlers = handlers
    # httpx logs full request URLs at INFO; Telegram URLs contain the bot token
    logging.getLogger("httpx").setLevel(logging.WARNING)
