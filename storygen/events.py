"""Observability sinks for named generation events.

Components receive an ``EventSink`` at construction and call
``emit(event, payload)`` at well-defined points (``retry:attempt``,
``quality:checked``, ``generation:failed``, ...). The core has no opinion on
where events end up; this module provides the stock sinks.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

from opentelemetry import metrics

logger = logging.getLogger(__name__)

EVENT_COUNTER_NAME = "storygen.events"


class EventSink(Protocol):
    """Receives named events with a structured payload."""

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        """Handle one event."""
        ...


class NullEventSink:
    """Discards every event."""

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        return None


class LoggingEventSink:
    """Writes every event to a logger.

    Failure events are logged at WARNING, everything else at the configured
    level.
    """

    WARNING_EVENTS = frozenset(
        {
            "operation:failed",
            "generation:failed",
            "generation:error",
            "circuit:rejected",
        }
    )

    def __init__(
        self, target: Optional[logging.Logger] = None, level: int = logging.INFO
    ):
        self._logger = target or logger
        self._level = level

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        level = logging.WARNING if event in self.WARNING_EVENTS else self._level
        self._logger.log(
            level,
            f"{event} {payload}",
            extra={"event": event, "payload": payload},
        )


class OpenTelemetryEventSink:
    """Counts events through an OpenTelemetry meter.

    Uses the globally configured meter provider; without one, the OTEL API
    hands out no-op instruments and this sink costs nothing.
    """

    def __init__(self, service_name: str = "storygen", meter: Any = None):
        self._meter = meter or metrics.get_meter(service_name)
        self._counter = self._meter.create_counter(
            name=EVENT_COUNTER_NAME,
            unit="1",
            description="Counter for storygen generation events",
        )

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        attributes = {"event": event}
        operation_name = payload.get("operation_name")
        if isinstance(operation_name, str):
            attributes["operation_name"] = operation_name
        self._counter.add(1, attributes=attributes)


class FanOutEventSink:
    """Forwards each event to several sinks.

    A failing sink is logged and skipped so observability problems never
    break generation.
    """

    def __init__(self, sinks: Iterable[EventSink]):
        self._sinks: List[EventSink] = list(sinks)

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        for sink in self._sinks:
            safe_emit(sink, event, payload)


def safe_emit(sink: EventSink, event: str, payload: Dict[str, Any]) -> None:
    """Emit an event, logging instead of raising if the sink fails.

    Args:
        sink: Destination sink
        event: Event name
        payload: Event payload
    """
    try:
        sink.emit(event, payload)
    except Exception as e:
        logger.warning(
            f"Event sink {type(sink).__name__} failed on '{event}': {e}",
            exc_info=True,
        )
