"""
Event pipeline for a single run.

Events are buffered in order and, when a sink is present, forwarded to it
synchronously. Sink failures never change the outcome of the run.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from ..models import EVENT_TYPES, Event
from ..security.redaction import Redactor

logger = logging.getLogger(__name__)


class EventPipeline:
    """Append-only, ordered event buffer with optional sink forwarding."""

    def __init__(self, sink: Any = None, redactor: Optional[Redactor] = None):
        """
        Initialize the pipeline.

        Args:
            sink: Host object exposing write_event(event), or None
            redactor: Redactor applied to event data and messages
        """
        self.sink = sink
        self.redactor = redactor or Redactor()
        self._events: List[Event] = []

    @property
    def events(self) -> List[Event]:
        """Buffered events (copy of the list)."""
        return list(self._events)

    def emit(
        self,
        event_type: str,
        message: str,
        step_name: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Event:
        """
        Record an event and forward it to the sink.

        Args:
            event_type: One of the engine event types
            message: Human readable message
            step_name: Step the event belongs to, if any
            data: Optional structured data (redacted before buffering)

        Returns:
            The recorded event
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type '{event_type}'")

        event = Event(
            type=event_type,
            message=self.redactor.redact_text(message),
            step_name=step_name,
            data=self.redactor.redact_data(data) if data is not None else None,
        )
        self._events.append(event)
        self._forward(event)
        return event

    def _forward(self, event: Event) -> None:
        if self.sink is None:
            return
        write_event = getattr(self.sink, 'write_event', None)
        if not callable(write_event):
            logger.warning(f"Event sink {type(self.sink).__name__} does not implement write_event")
            return
        try:
            write_event(copy.deepcopy(event))
        except Exception as e:
            logger.warning(f"Event sink failed for {event.type} event: "
                           f"{self.redactor.redact_text(str(e))}")
