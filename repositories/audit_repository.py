"""
Audit repository: webhook call log and the dead-letter log for best-effort work.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Mapping, Optional

from domain.time import utc_now
from repositories.store import Store

_WEBHOOK_LOGS_TABLE: str = "webhook_logs"
_DEAD_LETTER_TABLE: str = "side_effect_failures"


@dataclass(slots=True)
class WebhookAuditEntry:
    endpoint: str
    method: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    parsed: Any = None
    response: Any = None
    status_code: int = 0
    latency_ms: int = 0
    caller_ip: Optional[str] = None


def record_webhook_call(store: Store, entry: WebhookAuditEntry) -> None:
    store.insert(_WEBHOOK_LOGS_TABLE, {**asdict(entry), "created_at": utc_now().isoformat()})


def record_side_effect_failure(store: Store, task: str, payload: Mapping[str, Any], error: str) -> None:
    store.insert(
        _DEAD_LETTER_TABLE,
        {
            "task": task,
            "payload": dict(payload),
            "error": error,
            "created_at": utc_now().isoformat(),
        },
    )


__all__ = ["WebhookAuditEntry", "record_webhook_call", "record_side_effect_failure"]
