"""
Event Monitoring

Structured bot events and the sinks that consume them.
"""

from .bus import EventBus, EventSink, log_event
from .models import BotEvent, EventType, Severity
from .webhook import WebhookEventSink

__all__ = [
    "BotEvent",
    "EventBus",
    "EventSink",
    "EventType",
    "Severity",
    "WebhookEventSink",
    "log_event",
]
