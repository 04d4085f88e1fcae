"""In-process publish/subscribe channel for store change notifications.

The bus is an explicit object owned by the application and handed to the
services that publish on it; there is no module-level instance.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from .models import TaskState, utcnow

logger = logging.getLogger("agentflow-core.events")


@dataclass(frozen=True)
class TaskStateChanged:
    """Published after a task transition has been committed."""

    task_id: UUID
    epic_id: UUID
    from_state: TaskState
    to_state: TaskState
    actor: str
    version: int
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class EpicChanged:
    """Published after an epic was created, updated or deleted."""

    epic_id: UUID
    change: str  # "created" | "updated" | "deleted"
    status: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)


Handler = Callable[[object], None]


class EventBus:
    """Synchronous fan-out of events to subscribed handlers.

    A failing handler is logged and skipped so one subscriber cannot undo
    or block a committed change.
    """

    def __init__(self):
        self._handlers: list[Handler] = []
        self.version = 0

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register a handler; returns a callable that unsubscribes it."""
        self._handlers.append(handler)
        return lambda: self.unsubscribe(handler)

    def unsubscribe(self, handler: Handler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def publish(self, event: object) -> None:
        self.version += 1
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler {handler!r} failed for {type(event).__name__}: {e}", exc_info=True)
