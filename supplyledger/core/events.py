"""
supplyledger/core/events.py

Event sinks.

The ledger calls sink.publish(event) once per committed mutation, in
commit order, synchronously. Sinks are the seam to external observers
(tracking UIs, notification services, message buses).

Subclass EventSink and override publish(), or wrap a plain function in
CallbackEventSink.
"""

import logging
import threading
from typing import Callable, Iterable, List

from supplyledger.core.models import LedgerEvent


logger = logging.getLogger(__name__)


class EventSink:
    """Base sink. Discards events."""

    def publish(self, event: LedgerEvent) -> None:
        return None


class MemoryEventSink(EventSink):
    """Keeps every published event in memory. Thread-safe."""

    def __init__(self) -> None:
        self._lock   = threading.Lock()
        self._events: List[LedgerEvent] = []

    def publish(self, event: LedgerEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[LedgerEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: str) -> List[LedgerEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def last(self) -> LedgerEvent:
        with self._lock:
            if not self._events:
                raise LookupError("No events published")
            return self._events[-1]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class CallbackEventSink(EventSink):
    """Forwards each event to a callable."""

    def __init__(self, callback: Callable[[LedgerEvent], None]) -> None:
        self._callback = callback

    def publish(self, event: LedgerEvent) -> None:
        self._callback(event)


class LoggingEventSink(EventSink):
    """Logs each event at INFO on the 'supplyledger.events' logger."""

    def __init__(self, log: logging.Logger = None) -> None:
        self._log = log or logging.getLogger("supplyledger.events")

    def publish(self, event: LedgerEvent) -> None:
        args = " ".join(f"{k}={v}" for k, v in event.args.items())
        self._log.info("%s %s at=%s", event.event_type, args, event.timestamp)


class FanoutEventSink(EventSink):
    """
    Publishes to several sinks in order.

    A failing sink is logged and skipped so the remaining sinks still
    receive the event.
    """

    def __init__(self, sinks: Iterable[EventSink]) -> None:
        self._sinks = list(sinks)

    def add(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def publish(self, event: LedgerEvent) -> None:
        for sink in self._sinks:
            try:
                sink.publish(event)
            except Exception:
                logger.exception(
                    "event sink %s failed on %s", type(sink).__name__, event.event_type
                )
