"""
Progress reporting sinks.

Pipeline services report what they are doing through a ``ProgressSink``
instead of printing, so the same run can feed the terminal, the status API or
a test assertion.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Protocol


class ProgressSink(Protocol):
    """Receives structured progress events."""

    def emit(self, event: str, **fields: Any) -> None:
        ...


@dataclass
class ProgressEvent:
    event: str
    fields: Dict[str, Any]
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "emitted_at": self.emitted_at.isoformat(),
            **self.fields,
        }


class LoggingProgressSink:
    """Forward progress events to a logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("compra_agil.progress")

    def emit(self, event: str, **fields: Any) -> None:
        details = " ".join(f"{key}={value}" for key, value in fields.items())
        self._logger.info("%s %s", event, details)


class CollectingProgressSink:
    """Keep events in memory, optionally forwarding to another sink."""

    def __init__(self, forward_to: ProgressSink | None = None) -> None:
        self.events: List[ProgressEvent] = []
        self._forward_to = forward_to

    def emit(self, event: str, **fields: Any) -> None:
        self.events.append(ProgressEvent(event=event, fields=dict(fields)))
        if self._forward_to is not None:
            self._forward_to.emit(event, **fields)

    def names(self) -> List[str]:
        return [item.event for item in self.events]


class NullProgressSink:
    def emit(self, event: str, **fields: Any) -> None:
        return None


__all__ = [
    "CollectingProgressSink",
    "LoggingProgressSink",
    "NullProgressSink",
    "ProgressEvent",
    "ProgressSink",
]
