"""
Event Bus

Fans bot events out to registered sinks. Sinks are observers only: a sink
that raises is logged and skipped, it never changes the caller's control flow.
Async sinks run as background tasks so a slow endpoint never holds up a cycle.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

import structlog

from .models import BotEvent, EventType, Severity

EventSink = Callable[[BotEvent], Union[None, Awaitable[None]]]

logger = logging.getLogger(__name__)
event_logger = structlog.stdlib.get_logger("stakebot.events")

_LOG_LEVELS = {
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


def log_event(event: BotEvent) -> None:
    """Default sink: write the event as a structured log record."""

    event_logger.log(
        _LOG_LEVELS[event.severity],
        event.message,
        event_type=event.type.value,
        severity=event.severity.value,
        **event.payload,
    )


class EventBus:
    """Publish/subscribe hub for BotEvents."""

    def __init__(self, sinks: Optional[List[EventSink]] = None, log_events: bool = True):
        self._sinks: List[EventSink] = []
        self._pending: set[asyncio.Task] = set()
        if log_events:
            self._sinks.append(log_event)
        for sink in sinks or []:
            self.subscribe(sink)

    def subscribe(self, sink: EventSink) -> None:
        if sink not in self._sinks:
            self._sinks.append(sink)

    def unsubscribe(self, sink: EventSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    @property
    def sinks(self) -> List[EventSink]:
        return list(self._sinks)

    async def emit(
        self,
        event_type: EventType,
        message: str,
        severity: Severity = Severity.INFO,
        **payload: Any,
    ) -> BotEvent:
        """Build an event and deliver it to every sink.

        Sync sinks have run by the time this returns; async deliveries are
        tracked until ``drain()``.
        """

        return self.emit_nowait(event_type, message, severity, **payload)

    def emit_nowait(
        self,
        event_type: EventType,
        message: str,
        severity: Severity = Severity.INFO,
        **payload: Any,
    ) -> BotEvent:
        """Deliver from synchronous code.

        Sync sinks run inline; async sinks are scheduled on the running loop
        and tracked until they finish. Without a running loop they are dropped.
        """

        event = BotEvent(type=event_type, severity=severity, message=message, payload=payload)
        for sink in list(self._sinks):
            try:
                result = sink(event)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Event sink %r failed for %s: %s", sink, event.type.value, exc)
                continue
            if inspect.isawaitable(result):
                self._schedule(result, event)
        return event

    async def drain(self) -> None:
        """Wait for async deliveries that are still pending."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, awaitable: Awaitable[None], event: BotEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.debug("No running loop; dropped async delivery of %s", event.type.value)
            return

        async def _deliver() -> None:
            try:
                await awaitable
            except Exception as exc:  # noqa: BLE001
                logger.warning("Async event sink failed for %s: %s", event.type.value, exc)

        task = loop.create_task(_deliver())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
