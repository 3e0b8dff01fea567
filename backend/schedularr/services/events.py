"""Domain event recording for the generation path.

Core components never print or log directly about their decisions; they
emit named events into an EventLog. The default EventLog forwards every
event to a logger at DEBUG, and tests can inspect `events` afterwards.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class DomainEvent:
    name: str
    data: dict[str, Any] = field(default_factory=dict)


class EventLog:
    """Collects domain events and mirrors them to a logger."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.DEBUG):
        self.events: list[DomainEvent] = []
        self.logger = logger or logging.getLogger("schedularr.events")
        self.level = level

    def emit(self, name: str, **data: Any) -> None:
        self.events.append(DomainEvent(name, data))
        if self.logger.isEnabledFor(self.level):
            details = " ".join(f"{k}={v}" for k, v in data.items())
            self.logger.log(self.level, f"{name} {details}".rstrip())

    def named(self, name: str) -> list[DomainEvent]:
        return [e for e in self.events if e.name == name]
