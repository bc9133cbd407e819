from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from wbcrm.context import get_correlation_id
from wbcrm.core.config import get_settings


_BASE_RECORD_KEYS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "correlation_id"}

STRUCTURED_FIELDS = frozenset(
    {
        # request
        "method",
        "path",
        "status_code",
        "duration_ms",
        # identity and access
        "principal_id",
        "auth_source",
        "signal",
        "entity_type",
        "entity_id",
        "target_user_id",
        # lifecycle
        "event_name",
        "created_count",
        "skipped_count",
        "error",
    }
)
REDACTED_FIELDS = frozenset({"api_key", "secret", "token", "password", "authorization"})
REDACTED_VALUE = "[REDACTED]"
MAX_ERROR_LENGTH = 500


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: ``ts``, ``level``, ``logger``, ``msg``, ``correlation_id``, ``fields``.

    Only ``allowed_fields`` and redacted keys from ``extra`` reach ``fields``; anything else is dropped.
    """

    def __init__(
        self,
        allowed_fields: Iterable[str] = STRUCTURED_FIELDS,
        redacted_fields: Iterable[str] = REDACTED_FIELDS,
    ) -> None:
        super().__init__()
        self.allowed_fields = frozenset(allowed_fields)
        self.redacted_fields = frozenset(redacted_fields)

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "fields": self.extract_fields(record),
        }
        return json.dumps(payload, default=str)

    def extract_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _BASE_RECORD_KEYS or key.startswith("_"):
                continue
            if key in self.redacted_fields:
                fields[key] = REDACTED_VALUE
            elif key in self.allowed_fields:
                fields[key] = value

        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)
        return fields


_default_record_factory = logging.getLogRecordFactory()


def _record_with_correlation_id(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _default_record_factory(*args, **kwargs)
    if getattr(record, "correlation_id", None) is None:
        record.correlation_id = get_correlation_id()
    return record


def configure_logging(level: str | None = None) -> None:
    """Install the JSON handler on the root logger once; later calls are no-ops."""

    root_logger = logging.getLogger()
    if getattr(root_logger, "_wbcrm_configured", False):
        return

    level_name = (level or get_settings().log_level).upper()
    resolved_level = logging.getLevelName(level_name)
    if not isinstance(resolved_level, int):
        resolved_level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    logging.setLogRecordFactory(_record_with_correlation_id)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(resolved_level)
    root_logger._wbcrm_configured = True  # type: ignore[attr-defined]
