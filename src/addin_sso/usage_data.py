from __future__ import annotations

import json
import logging
import sys
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Deque, Dict, List, Optional, TextIO

logger = logging.getLogger(__name__)


@dataclass
class UsageEvent:
    timestamp: str
    kind: str
    method: str
    platform: str = sys.platform
    succeeded: bool = True
    message: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


class InMemoryUsageStore:
    """Thread-safe buffer of usage events, newest first."""

    def __init__(self, max_events: int = 1000):
        self._events: Deque[UsageEvent] = deque(maxlen=max_events)
        self._lock = Lock()

    def append(self, event: UsageEvent) -> None:
        with self._lock:
            self._events.appendleft(event)

    def list(self, limit: int = 100) -> List[UsageEvent]:
        with self._lock:
            return list(list(self._events)[:limit])

    def methods(self, kind: Optional[str] = None) -> List[str]:
        with self._lock:
            return [event.method for event in reversed(self._events) if kind is None or event.kind == kind]


class JsonUsageLogger:
    """Fire-and-forget usage data reporter.

    Each event is built locally at the call site and written as one JSON line.
    Events are optionally mirrored to an in-memory store. Nothing raised while
    reporting ever reaches the caller.
    """

    def __init__(
        self,
        name: str = "addin_sso.usage",
        level: int = logging.INFO,
        store: Optional[InMemoryUsageStore] = None,
        enabled: bool = True,
        stream: Optional[TextIO] = None,
    ):
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            handler = logging.StreamHandler(stream or sys.stderr)
            handler.setFormatter(_JsonFormatter())
            self.logger.addHandler(handler)
        self.logger.setLevel(level)
        self.logger.propagate = False
        self.store = store
        self.enabled = enabled

    def custom_event(self, method: str, **data: Any) -> None:
        self._send(UsageEvent(timestamp=_now(), kind="custom", method=method, data=data))

    def success(self, method: str) -> None:
        self._send(UsageEvent(timestamp=_now(), kind="success", method=method))

    def exception(self, method: str, message: str) -> None:
        self._send(
            UsageEvent(timestamp=_now(), kind="exception", method=method, succeeded=False, message=message),
            level=logging.WARNING,
        )

    def _send(self, event: UsageEvent, level: int = logging.INFO) -> None:
        if not self.enabled:
            return
        try:
            if self.store:
                self.store.append(event)
            self.logger.log(
                level,
                event.method,
                extra={
                    "extra": {
                        "kind": event.kind,
                        "platform": event.platform,
                        "succeeded": event.succeeded,
                        "error": event.message,
                        **event.data,
                    }
                },
            )
        except Exception:  # noqa: BLE001
            logger.debug("Dropped usage event %s", event.method, exc_info=True)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "method": record.getMessage(),
        }

        extra: Optional[Dict[str, Any]] = getattr(record, "extra", None)  # type: ignore[attr-defined]
        if extra:
            payload.update({k: v for k, v in extra.items() if v is not None})

        return json.dumps(payload, default=str)
