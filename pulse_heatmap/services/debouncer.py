"""
debouncer.py — Camera movement debouncer.

Map SDKs fire a move callback on every animation frame of a pan, pinch or
fling. Fetching clusters for each of those would flood the backend and
thrash the render cache, so the debouncer waits for the camera to go idle
and then stay quiet for a settle window before asking for exactly one
fetch.

                    move                       idle
      ┌──────┐  ───────────▶  ┌────────┐  ───────────▶  ┌──────────┐
      │ IDLE │                │ MOVING │                │ SETTLING │
      └──────┘  ◀─── timer ── └────────┘  ◀─── move ─── └──────────┘
          ▲      (from SETTLING,   ▲  move (no-op)           │
          │       emits 1 fetch)   └─────┘                   │
          └───────────────────── timer expiry ───────────────┘

  IDLE     + move  → MOVING   (pending timer and in-flight viewport read cancelled)
  MOVING   + move  → MOVING   (only the latest zoom is recorded)
  IDLE/MOVING + idle → SETTLING (settle timer started)
  SETTLING + idle  → SETTLING (timer restarted from the latest idle)
  SETTLING + move  → MOVING   (timer cancelled, no fetch)
  SETTLING + timer → IDLE     viewport read, one FetchRequest emitted

If the viewport cannot be read (map view not laid out yet) the fetch is
skipped silently: clusters are supplementary, never worth an error.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from pulse_heatmap.core.config import settings
from pulse_heatmap.core.errors import ViewportUnavailable
from pulse_heatmap.core.events import EventSink, LoggingEventSink
from pulse_heatmap.models.geo import ViewportBounds
from pulse_heatmap.services.zoom import group_zoom

logger = logging.getLogger(__name__)

ViewportProvider = Callable[[], Awaitable[Optional[ViewportBounds]]]


class CameraState(str, Enum):
    IDLE = "idle"
    MOVING = "moving"
    SETTLING = "settling"


@dataclass(frozen=True)
class FetchRequest:
    """What the map wants clusters for once the camera has settled."""

    zoom: float                 # already grouped
    viewport: ViewportBounds
    radius_km: int


class CameraDebouncer:
    def __init__(
        self,
        viewport_provider: ViewportProvider,
        radius_provider: Callable[[], int],
        on_fetch: Callable[[FetchRequest], None],
        settle_seconds: Optional[float] = None,
        initial_zoom: float = 6.0,
        events: Optional[EventSink] = None,
    ) -> None:
        self._viewport_provider = viewport_provider
        self._radius_provider = radius_provider
        self._on_fetch = on_fetch
        self.settle_seconds = (
            settle_seconds if settle_seconds is not None else settings.camera_settle_seconds
        )
        self._events = events or LoggingEventSink(logger)

        self.state = CameraState.IDLE
        self.zoom = initial_zoom
        self.fetches_emitted = 0

        self._timer: Optional[asyncio.TimerHandle] = None
        self._settle_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Camera callbacks ──────────────────────────────────────────────────────

    def on_camera_move(self, zoom: Optional[float] = None) -> None:
        if self._closed:
            return
        if zoom is not None:
            self.zoom = zoom
        if self.state is CameraState.MOVING:
            return
        self._cancel_timer()
        self._cancel_settle_task()
        self.state = CameraState.MOVING

    def on_camera_idle(self) -> None:
        if self._closed:
            return
        self._cancel_timer()
        self._cancel_settle_task()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.settle_seconds, self._on_settle_timer)
        self.state = CameraState.SETTLING

    # ── Settling ──────────────────────────────────────────────────────────────

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _cancel_settle_task(self) -> None:
        # A settle still reading the viewport belongs to a camera position that is gone.
        if self._settle_task is not None and not self._settle_task.done():
            self._settle_task.cancel()
        self._settle_task = None

    def _on_settle_timer(self) -> None:
        self._timer = None
        self.state = CameraState.IDLE
        self._settle_task = asyncio.get_running_loop().create_task(self._emit_fetch())

    async def _emit_fetch(self) -> None:
        try:
            viewport = await self._viewport_provider()
        except ViewportUnavailable as exc:
            viewport = None
            logger.debug("Viewport read failed: %s", exc)
        if viewport is None:
            self._events.emit("viewport_unavailable", zoom=self.zoom)
            return
        if self._closed:
            return

        request = FetchRequest(
            zoom=group_zoom(self.zoom),
            viewport=viewport,
            radius_km=self._radius_provider(),
        )
        self.fetches_emitted += 1
        self._events.emit("camera_settled", zoom=request.zoom, radius_km=request.radius_km)
        self._on_fetch(request)

    async def wait_settled(self) -> None:
        """Wait for a settle that has already fired to finish emitting (tests, shutdown)."""
        if self._settle_task is not None:
            await asyncio.gather(self._settle_task, return_exceptions=True)

    def close(self) -> None:
        """Cancel the pending timer and settle task; later events are ignored."""
        self._closed = True
        self._cancel_timer()
        self._cancel_settle_task()
        self.state = CameraState.IDLE
