"""
events.py — Structured state-transition events.

The view state reports what it does (fetch started, response applied,
stale response dropped, viewport missing …) as named events with keyword
fields instead of free-form log lines. Production code uses LoggingEventSink;
tests inject RecordingEventSink and assert on the events directly.

Event names in use:
  load_started, load_completed, location_unavailable,
  location_push_failed, heatmap_data_failed,
  camera_settled, viewport_unavailable,
  cluster_fetch_started, cluster_fetch_failed,
  clusters_applied, stale_clusters_discarded,
  render_cache_hit, render_cache_miss, view_state_closed
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    def emit(self, event: str, **fields: Any) -> None: ...


class LoggingEventSink:
    """Forward events to the standard logger (DEBUG for chatty ones)."""

    _QUIET = {"render_cache_hit", "render_cache_miss", "camera_settled"}

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def emit(self, event: str, **fields: Any) -> None:
        level = logging.DEBUG if event in self._QUIET else logging.INFO
        if event.endswith("_failed") or event == "location_unavailable":
            level = logging.WARNING
        self._log.log(level, "%s %s", event, fields)


@dataclass
class RecordedEvent:
    name: str
    fields: dict[str, Any] = field(default_factory=dict)


class RecordingEventSink:
    """Keeps every event in memory, in order."""

    def __init__(self) -> None:
        self.events: list[RecordedEvent] = []

    def emit(self, event: str, **fields: Any) -> None:
        self.events.append(RecordedEvent(event, dict(fields)))

    def names(self) -> list[str]:
        return [e.name for e in self.events]

    def of(self, name: str) -> list[RecordedEvent]:
        return [e for e in self.events if e.name == name]

    def clear(self) -> None:
        self.events.clear()
