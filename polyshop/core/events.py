from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    """Receives named core events with key/value attributes."""

    def emit(self, name: str, **attributes: Any) -> None:
        ...


class NoOpEventSink:
    def emit(self, name: str, **attributes: Any) -> None:
        return None


class RecordingEventSink:
    """Keeps emitted events in memory, in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, name: str, **attributes: Any) -> None:
        self.events.append((name, attributes))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def emit_event(sink: EventSink | None, name: str, **attributes: Any) -> None:
    """Report an event; a missing or broken sink never affects the caller."""
    if sink is None:
        return
    try:
        sink.emit(name, **attributes)
    except Exception:
        logger.exception("Event sink failed", extra={"event": name})
