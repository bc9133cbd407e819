from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from wbcrm.context import get_correlation_id
from wbcrm.core.events import event_bus

ENVELOPE_VERSION = 1

published_events: list[dict[str, Any]] = []


def build_envelope(event_type: str, actor_user_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "actor_user_id": actor_user_id,
        "correlation_id": get_correlation_id(),
        "version": ENVELOPE_VERSION,
        "payload": payload,
    }


def publish(envelope: dict[str, Any]) -> None:
    """Record the envelope and hand it to in-process lifecycle subscribers."""

    published_events.append(envelope)
    event_bus.publish(envelope["event_type"], envelope)
