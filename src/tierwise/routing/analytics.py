"""JSONL analytics for routing decisions.

Every routing decision (and, later, its completion) can be recorded as
one JSON object per line for offline analysis of tier mix, latency and
estimated spend.

Design:
1. Append-only JSONL. The file is never truncated; a crash mid-write
   loses at most one line.
2. Non-blocking. record() serializes the event and enqueues the line;
   a single writer thread appends lines in the order they were recorded.
3. Best-effort. Serialization and I/O failures are counted and dropped,
   never raised and never retried. Analytics must not break routing.
4. Explicit lifecycle. Loggers are owned by an AnalyticsRegistry the
   host creates; registry.close() drains every queue on shutdown.

Default path: $TIERWISE_STATE_DIR/logs/routing-analytics.jsonl
"""

import json
import logging
import queue
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from tierwise.config import default_analytics_path
from tierwise.types import IntentComplexity, ModelTierId

logger = logging.getLogger(__name__)


class AnalyticsEventType(str, Enum):
    """Types of routing analytics events."""
    ROUTE = "route"
    COMPLETE = "complete"
    FALLBACK = "fallback"
    BUDGET_DOWNGRADE = "budget_downgrade"
    OVERRIDE = "override"


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class RoutingAnalyticsEvent:
    """A single routing analytics event."""
    event: AnalyticsEventType
    intent: IntentComplexity
    confidence: float
    tier: ModelTierId
    provider: str
    model: str
    message_length: int
    prompt_adapted: bool
    estimated_cost_usd: float | None = None
    original_tier: ModelTierId | None = None
    endpoint: str | None = None
    session_id: str | None = None
    channel: str | None = None
    latency_ms: float | None = None
    response_size: int | None = None
    classifier_reason: str | None = None
    fallback_reason: str | None = None
    ts: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to the on-disk JSON shape.

        Optional keys are omitted when unset; estimatedCostUsd is always
        present and null for free/unknown cost.
        """
        d: dict[str, Any] = {
            "ts": self.ts or utc_timestamp(),
            "event": AnalyticsEventType(self.event).value,
            "intent": IntentComplexity(self.intent).value,
            "confidence": self.confidence,
            "tier": ModelTierId(self.tier).value,
        }
        if self.original_tier is not None:
            d["originalTier"] = ModelTierId(self.original_tier).value
        d["provider"] = self.provider
        d["model"] = self.model
        if self.endpoint:
            d["endpoint"] = self.endpoint
        if self.session_id:
            d["sessionId"] = self.session_id
        if self.channel:
            d["channel"] = self.channel
        d["messageLength"] = self.message_length
        if self.latency_ms is not None:
            d["latencyMs"] = self.latency_ms
        if self.response_size is not None:
            d["responseSize"] = self.response_size
        d["estimatedCostUsd"] = self.estimated_cost_usd
        if self.classifier_reason:
            d["classifierReason"] = self.classifier_reason
        if self.fallback_reason:
            d["fallbackReason"] = self.fallback_reason
        d["promptAdapted"] = self.prompt_adapted
        return d


_STOP = object()


class RoutingAnalyticsLogger:
    """Append-only JSONL event sink with a private, ordered write queue.

    Usage:
        with RoutingAnalyticsLogger(path) as analytics:
            analytics.record(event)
        # queue drained, writer thread stopped
    """

    enabled = True

    def __init__(self, file_path: Path):
        self.file_path = Path(file_path)
        self._queue: queue.Queue[Any] = queue.Queue()
        self._thread: threading.Thread | None = None
        # Guards _closed, _thread and enqueueing, so nothing lands after _STOP
        self._lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._closed = False

        # Statistics
        self._events_logged = 0
        self._events_dropped = 0

    @property
    def events_logged(self) -> int:
        """Lines successfully appended."""
        return self._events_logged

    @property
    def events_dropped(self) -> int:
        """Events lost to serialization or I/O errors."""
        return self._events_dropped

    @property
    def closed(self) -> bool:
        return self._closed

    def record(self, event: RoutingAnalyticsEvent | Mapping[str, Any]) -> None:
        """Queue an event for writing. Returns immediately, never raises."""
        try:
            payload = event.to_dict() if isinstance(event, RoutingAnalyticsEvent) else dict(event)
            line = json.dumps(payload, ensure_ascii=False, allow_nan=False)
            # Lone surrogates survive json.dumps but not the UTF-8 file
            line.encode("utf-8")
        except (TypeError, ValueError, RecursionError) as e:
            logger.debug(f"Dropping unserializable analytics event: {e}")
            self._count_dropped()
            return

        with self._lock:
            if self._closed:
                queued = False
            else:
                self._ensure_writer()
                self._queue.put(line + "\n")
                queued = True
        if not queued:
            self._count_dropped()

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every queued line has been handled.

        Returns:
            True if the queue drained within the timeout.
        """
        if self._thread is None:
            return True
        done = threading.Event()

        def _waiter() -> None:
            self._queue.join()
            done.set()

        threading.Thread(target=_waiter, daemon=True).start()
        return done.wait(timeout)

    def close(self, timeout: float | None = 5.0) -> None:
        """Drain the queue and stop the writer thread."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread
            if thread is not None:
                self._queue.put(_STOP)

        if thread is not None:
            thread.join(timeout)
        logger.debug(
            f"Routing analytics closed ({self._events_logged} logged, "
            f"{self._events_dropped} dropped)"
        )

    def __enter__(self) -> "RoutingAnalyticsLogger":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _count_dropped(self) -> None:
        with self._stats_lock:
            self._events_dropped += 1

    def _ensure_writer(self) -> None:
        """Start the writer thread. Caller holds self._lock."""
        if self._thread is None:
            self._thread = threading.Thread(
                target=self._write_loop,
                name=f"routing-analytics:{self.file_path.name}",
                daemon=True,
            )
            self._thread.start()

    def _write_loop(self) -> None:
        while True:
            line = self._queue.get()
            try:
                if line is _STOP:
                    return
                self._append(line)
            except Exception as e:
                # One bad line must not stop the writer
                logger.debug(f"Analytics writer skipped a line: {e}")
                self._count_dropped()
            finally:
                self._queue.task_done()

    def _append(self, line: str) -> None:
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.file_path, "a", encoding="utf-8") as f:
                f.write(line)
            with self._stats_lock:
                self._events_logged += 1
        except (OSError, ValueError) as e:
            logger.debug(f"Analytics write to {self.file_path} failed: {e}")
            self._count_dropped()


class AnalyticsRegistry:
    """Host-owned table of analytics loggers, one per output path.

    Usage:
        with AnalyticsRegistry() as registry:
            analytics = registry.get(path)
            ...
        # every logger drained and closed
    """

    def __init__(self):
        self._loggers: dict[Path, RoutingAnalyticsLogger] = {}
        self._lock = threading.Lock()

    def get(self, file_path: Path) -> RoutingAnalyticsLogger:
        """Get the logger for a path, creating it on first use."""
        key = Path(file_path).expanduser().resolve()
        with self._lock:
            existing = self._loggers.get(key)
            if existing is not None and not existing.closed:
                return existing
            created = RoutingAnalyticsLogger(key)
            self._loggers[key] = created
        logger.info(f"Routing analytics logger enabled ({key})")
        return created

    def __len__(self) -> int:
        return len(self._loggers)

    def flush(self, timeout: float | None = None) -> bool:
        return all(a.flush(timeout) for a in list(self._loggers.values()))

    def close(self) -> None:
        """Drain and close every logger."""
        with self._lock:
            loggers = list(self._loggers.values())
            self._loggers.clear()
        for analytics in loggers:
            analytics.close()

    def __enter__(self) -> "AnalyticsRegistry":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def create_routing_analytics_logger(
    enabled: bool,
    registry: AnalyticsRegistry,
    analytics_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> RoutingAnalyticsLogger | None:
    """Get a routing analytics logger from the registry.

    Returns:
        None when analytics is disabled.
    """
    if not enabled:
        return None
    return registry.get(analytics_path or default_analytics_path(env))
