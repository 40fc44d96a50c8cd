"""In-process telemetry hooks for analysis and correction activity."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Iterable, Mapping, Protocol

LOGGER = logging.getLogger(__name__)

ANALYSIS_SCHEDULED = "analysis.scheduled"
ANALYSIS_COMPLETED = "analysis.completed"
ANALYSIS_STALE = "analysis.stale"
ANALYSIS_FAILED = "analysis.failed"
CORRECTIONS_APPLIED = "corrections.applied"
ANNOTATIONS_PAINTED = "annotations.painted"

KNOWN_EVENTS: tuple[str, ...] = (
    ANALYSIS_SCHEDULED,
    ANALYSIS_COMPLETED,
    ANALYSIS_STALE,
    ANALYSIS_FAILED,
    CORRECTIONS_APPLIED,
    ANNOTATIONS_PAINTED,
)

_EVENT_LISTENERS: dict[str, list[Callable[[dict[str, Any]], None]]] = {}


@dataclass(slots=True)
class TelemetryRecord:
    """A single emitted event captured by a sink."""

    event: str
    payload: dict[str, Any]
    timestamp: float = field(default_factory=time.time)


class TelemetrySink(Protocol):
    """Sink interface used to collect telemetry events."""

    def record(self, record: TelemetryRecord) -> None:  # pragma: no cover - protocol stub
        ...


class InMemoryTelemetrySink:
    """Simple ring-buffer telemetry sink for local inspection and tests."""

    def __init__(self, capacity: int = 200) -> None:
        self._capacity = max(10, capacity)
        self._buffer: deque[TelemetryRecord] = deque(maxlen=self._capacity)
        self._lock = Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def record(self, record: TelemetryRecord) -> None:
        with self._lock:
            self._buffer.append(record)

    def tail(self, limit: int | None = None) -> list[TelemetryRecord]:
        with self._lock:
            events = list(self._buffer)
        if limit is None or limit >= len(events):
            return events
        return events[-limit:]

    def events(self, name: str) -> list[TelemetryRecord]:
        return [record for record in self.tail() if record.event == name]

    def __call__(self, payload: dict[str, Any]) -> None:
        name = str(payload.get("event", ""))
        self.record(TelemetryRecord(event=name, payload=dict(payload)))

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


def register_event_listener(event_name: str, callback: Callable[[dict[str, Any]], None]) -> None:
    """Register a callback invoked whenever :func:`emit` fires *event_name*."""

    if not event_name or callback is None:
        return
    listeners = _EVENT_LISTENERS.setdefault(event_name, [])
    if callback not in listeners:
        listeners.append(callback)


def unregister_event_listener(event_name: str, callback: Callable[[dict[str, Any]], None]) -> None:
    listeners = _EVENT_LISTENERS.get(event_name)
    if not listeners:
        return
    try:
        listeners.remove(callback)
    except ValueError:
        return
    if not listeners:
        _EVENT_LISTENERS.pop(event_name, None)


def attach_sink(sink: InMemoryTelemetrySink, events: Iterable[str] = KNOWN_EVENTS) -> None:
    """Route every event in ``events`` into ``sink``."""

    for name in events:
        register_event_listener(name, sink)


def detach_sink(sink: InMemoryTelemetrySink, events: Iterable[str] = KNOWN_EVENTS) -> None:
    for name in events:
        unregister_event_listener(name, sink)


def emit(event_name: str, payload: Mapping[str, Any] | None = None) -> None:
    """Broadcast a structured telemetry event to in-process listeners."""

    if not event_name:
        return
    event_payload = {"event": event_name}
    if payload:
        event_payload.update(payload)
    listeners = list(_EVENT_LISTENERS.get(event_name, ()))
    for callback in listeners:
        try:
            callback(dict(event_payload))
        except Exception:  # pragma: no cover - listeners must not break emitters
            LOGGER.debug("Telemetry listener %s failed", callback, exc_info=True)
    LOGGER.debug("Telemetry emit %s: %s", event_name, event_payload)


__all__ = [
    "ANALYSIS_COMPLETED",
    "ANALYSIS_FAILED",
    "ANALYSIS_SCHEDULED",
    "ANALYSIS_STALE",
    "ANNOTATIONS_PAINTED",
    "CORRECTIONS_APPLIED",
    "InMemoryTelemetrySink",
    "KNOWN_EVENTS",
    "TelemetryRecord",
    "TelemetrySink",
    "attach_sink",
    "detach_sink",
    "emit",
    "register_event_listener",
    "unregister_event_listener",
]
