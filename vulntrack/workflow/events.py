"""In-process event bus for remediation workflow events."""

import asyncio
import inspect
import json
import logging
import uuid
from datetime import datetime
from typing import Dict, List, Any, Optional, Callable
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkflowEventType(Enum):
    """Workflow event types."""
    STATUS_TRANSITIONED = "status_transitioned"
    BULK_TRANSITION_COMPLETED = "bulk_transition_completed"
    INSTANCE_ASSIGNED = "instance_assigned"
    EVIDENCE_CREATED = "evidence_created"
    EVIDENCE_DELETED = "evidence_deleted"
    IMPACT_SNAPSHOT_STORED = "impact_snapshot_stored"


@dataclass
class WorkflowEvent:
    """Workflow event data structure."""
    event_type: WorkflowEventType
    subject_id: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    source: str = "workflow_engine"
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'event_id': self.event_id,
            'event_type': self.event_type.value,
            'subject_id': self.subject_id,
            'user_id': self.user_id,
            'timestamp': self.timestamp.isoformat(),
            'data': self.data,
            'source': self.source
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict())


class WorkflowEventBus:
    """Event bus notifying observers of committed workflow changes.

    Events are emitted after the underlying change has been committed, so
    a subscriber never sees a transition that was rolled back. Subscriber
    failures are logged and do not affect the operation that emitted.
    """

    def __init__(self, max_event_history: int = 1000):
        """Initialize event bus.

        Args:
            max_event_history: Maximum number of events to keep in history
        """
        self.subscribers: Dict[str, List[Callable]] = {}
        self.event_history: List[WorkflowEvent] = []
        self.max_event_history = max_event_history
        self._lock = asyncio.Lock()

    async def emit(self, event: WorkflowEvent) -> None:
        """Emit workflow event to all subscribers.

        Args:
            event: WorkflowEvent to emit
        """
        async with self._lock:
            self.event_history.append(event)
            if len(self.event_history) > self.max_event_history:
                self.event_history.pop(0)

        logger.debug(f"Emitting event {event.event_type.value} for {event.subject_id}")

        await self._notify_subscribers(event)

    async def subscribe(self, event_type: str, callback: Callable[[WorkflowEvent], Any]) -> None:
        """Subscribe to workflow events.

        Args:
            event_type: Event type value to subscribe to ('*' for all events)
            callback: Plain or async callable invoked with each event
        """
        async with self._lock:
            self.subscribers.setdefault(event_type, []).append(callback)

        logger.debug(f"Subscriber added for event type: {event_type}")

    async def unsubscribe(self, event_type: str, callback: Callable[[WorkflowEvent], Any]) -> None:
        """Unsubscribe from workflow events."""
        async with self._lock:
            if event_type in self.subscribers:
                if callback in self.subscribers[event_type]:
                    self.subscribers[event_type].remove(callback)
                if not self.subscribers[event_type]:
                    del self.subscribers[event_type]

        logger.debug(f"Subscriber removed for event type: {event_type}")

    async def get_event_history(self, subject_id: Optional[str] = None,
                                event_type: Optional[str] = None,
                                limit: int = 100) -> List[WorkflowEvent]:
        """Get event history.

        Args:
            subject_id: Filter by subject (instance, evidence or CVE id)
            event_type: Filter by event type value
            limit: Maximum number of events to return

        Returns:
            List of WorkflowEvent objects, oldest first
        """
        async with self._lock:
            events = self.event_history.copy()

        if subject_id:
            events = [e for e in events if e.subject_id == subject_id]

        if event_type:
            events = [e for e in events if e.event_type.value == event_type]

        return events[-limit:] if limit > 0 else events

    async def _notify_subscribers(self, event: WorkflowEvent) -> None:
        """Notify all subscribers of an event."""
        event_subscribers = self.subscribers.get(event.event_type.value, [])
        wildcard_subscribers = self.subscribers.get('*', [])

        for callback in event_subscribers + wildcard_subscribers:
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in event subscriber: {e}")
