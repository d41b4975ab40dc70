import logging
from dataclasses import dataclass, field
from typing import Any

import pendulum

from utils.atomic import Checkpointable


@dataclass(frozen=True)
class Event:
    name: str
    emitter: str
    args: dict[str, Any]
    timestamp: pendulum.DateTime = field(default_factory=lambda: pendulum.now("UTC"))


class EventLog(Checkpointable):
    """Append-only record of what a component did, for observability and indexing."""

    def __init__(self, emitter: str, logger: logging.Logger | None = None):
        self.emitter = emitter
        self.logger = logging.getLogger(__name__) if logger is None else logger
        self._events: list[Event] = []

    def emit(self, name: str, **args: Any) -> Event:
        event = Event(name=name, emitter=self.emitter, args=args)
        self._events.append(event)
        self.logger.info("%s %s %s", self.emitter, name, args)
        return event

    def of(self, name: str) -> list[Event]:
        return [e for e in self._events if e.name == name]

    def last(self, name: str | None = None) -> Event | None:
        events = self._events if name is None else self.of(name)
        return events[-1] if events else None

    def __iter__(self):
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)

    def checkpoint(self):
        return {"size": len(self._events)}

    def restore(self, state):
        del self._events[state["size"]:]
