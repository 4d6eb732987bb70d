"""
view_state.py — The heat-map screen's state holder.

HeatMapViewState is the single component behind the map screen. It owns
the DisplayState, the camera debouncer and the render cache, and it is the
only thing that talks to the gateway on the screen's behalf.

HOW THE DATA FLOWS
──────────────────
1. load() — full reload: device location → fire-and-forget location push →
   heat-map points + coverage fetched concurrently → status LOADED → one
   cluster fetch when the cluster layer is visible.
2. The map widget forwards on_camera_move(zoom) / on_camera_idle(). The
   debouncer turns a gesture into one FetchRequest once the camera has
   been quiet for the settle window.
3. Each cluster fetch gets a monotonically increasing request id. A
   response is applied only if its id is newer than the one already on
   screen, so a slow request from an old camera position can never
   overwrite the clusters of a newer one.
4. circles / markers are read through the render cache.

FAILURE POLICY
──────────────
  location missing      → status ERROR, user-facing message (blocking)
  heat-map / coverage   → logged, previous data kept, status LOADED
  cluster fetch         → logged, previous clusters kept
  location push         → rate-limited, logged, never blocks the load
  viewport not ready    → fetch skipped

The map is a supplementary view: stale data beats an error screen.

Usage
─────
    async with HeatMapViewState(gateway, location_provider, map.visible_region) as view:
        await view.load()
        view.on_camera_move(11.4)
        view.on_camera_idle()
        draw(view.circles, view.markers)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Optional

from pulse_heatmap.core.config import settings
from pulse_heatmap.core.errors import GatewayError, LocationUnavailable, ViewportUnavailable
from pulse_heatmap.core.events import EventSink, LoggingEventSink
from pulse_heatmap.models.display import Circle, DisplayState, HeatMapStatus, Marker
from pulse_heatmap.models.heatmap import ClusterSummary
from pulse_heatmap.services.debouncer import CameraDebouncer, FetchRequest, ViewportProvider
from pulse_heatmap.services.gateway import HeatMapGateway
from pulse_heatmap.services.geo_math import coverage_statistics, is_within_radius
from pulse_heatmap.services.location import LocationProvider, LocationTracker
from pulse_heatmap.services.render_cache import RenderCache
from pulse_heatmap.services.zoom import CameraPosition, group_zoom, initial_camera

logger = logging.getLogger(__name__)


class HeatMapViewState:
    def __init__(
        self,
        gateway: HeatMapGateway,
        location_provider: LocationProvider,
        viewport_provider: ViewportProvider,
        *,
        radius_km: Optional[int] = None,
        show_heatmap_layer: Optional[bool] = None,
        show_cluster_layer: Optional[bool] = None,
        max_clusters: Optional[int] = None,
        settle_seconds: Optional[float] = None,
        location_tracker: Optional[LocationTracker] = None,
        events: Optional[EventSink] = None,
    ) -> None:
        self._gateway = gateway
        self._location_provider = location_provider
        self._viewport_provider = viewport_provider
        self._tracker = location_tracker or LocationTracker(gateway)
        self._events = events or LoggingEventSink(logger)
        self.max_clusters = max_clusters if max_clusters is not None else settings.max_clusters

        self.state = DisplayState(
            radius_km=radius_km if radius_km is not None else settings.default_radius_km,
            show_heatmap_layer=(
                settings.show_heatmap_layer if show_heatmap_layer is None else show_heatmap_layer
            ),
            show_cluster_layer=(
                settings.show_cluster_layer if show_cluster_layer is None else show_cluster_layer
            ),
        )

        self._render_cache = RenderCache(self._events)
        self._debouncer = CameraDebouncer(
            viewport_provider=viewport_provider,
            radius_provider=lambda: self.state.radius_km,
            on_fetch=self._on_camera_settled,
            settle_seconds=settle_seconds,
            initial_zoom=self.state.zoom_level,
            events=self._events,
        )

        self._tasks: set[asyncio.Task] = set()
        self._last_request_id = 0
        self._closed = False

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def __aenter__(self) -> "HeatMapViewState":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def debouncer(self) -> CameraDebouncer:
        return self._debouncer

    @property
    def render_cache(self) -> RenderCache:
        return self._render_cache

    def close(self) -> None:
        """Tear down the settle timer and every pending task. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._debouncer.close()
        for task in list(self._tasks):
            task.cancel()
        self._events.emit("view_state_closed", pending_tasks=len(self._tasks))

    async def aclose(self) -> None:
        pending = list(self._tasks)
        self.close()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait until the debouncer and all background fetches have finished."""
        await self._debouncer.wait_settled()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Full reload ───────────────────────────────────────────────────────────

    async def load(self, radius_km: Optional[int] = None) -> None:
        if self._closed:
            return
        if radius_km is not None:
            self.state.radius_km = radius_km

        self.state.status = HeatMapStatus.LOADING
        self._events.emit("load_started", radius_km=self.state.radius_km)

        try:
            location = await self._location_provider.get_current_location()
        except LocationUnavailable:
            location = None
        if location is None:
            self.state.status = HeatMapStatus.ERROR
            self.state.error = LocationUnavailable.USER_MESSAGE
            self._events.emit("location_unavailable")
            return

        self.state.user_location = location
        self.state.error = None

        # Fire-and-forget: a failed push must never hold up the map.
        self._spawn(self._push_location(location))

        try:
            points, coverage = await asyncio.gather(
                self._gateway.fetch_heatmap_points(),
                self._gateway.fetch_location_coverage(location, float(self.state.radius_km)),
            )
        except GatewayError as exc:
            self._events.emit("heatmap_data_failed", error=str(exc))
        else:
            self.state.data_points = points
            self.state.data_points_revision += 1
            self.state.coverage = coverage

        if self._closed:
            return
        self.state.status = HeatMapStatus.LOADED
        self._events.emit(
            "load_completed",
            radius_km=self.state.radius_km,
            data_points=len(self.state.data_points),
        )

        if self.state.show_cluster_layer:
            await self._fetch_for_current_camera()

    async def set_radius(self, radius_km: int) -> None:
        """Change the coverage radius. Density is computed against it upstream, so reload everything."""
        if radius_km <= 0:
            raise ValueError(f"radius_km must be positive, got {radius_km}")
        await self.load(radius_km)

    async def refresh_location(self) -> None:
        await self.load()

    async def _push_location(self, location) -> None:
        # The tracker rate-limits: a reload moments after the last one sends nothing.
        if await self._tracker.track(location):
            return
        if self._tracker.last_error is not None:
            self._events.emit(
                "location_push_failed",
                location=str(location),
                error=str(self._tracker.last_error),
            )

    # ── Layer toggles ─────────────────────────────────────────────────────────

    def toggle_heatmap_layer(self) -> bool:
        self.state.show_heatmap_layer = not self.state.show_heatmap_layer
        return self.state.show_heatmap_layer

    def toggle_cluster_layer(self) -> Optional[asyncio.Task]:
        """
        Flip the cluster layer.

        Turning it on before any clusters were fetched schedules exactly one
        fetch for the current camera; the task is returned so callers can
        await it. Otherwise returns None.
        """
        self.state.show_cluster_layer = not self.state.show_cluster_layer
        if self._closed or not self.state.show_cluster_layer:
            return None
        if self.state.last_clusters is not None:
            return None
        return self._spawn(self._fetch_for_current_camera())

    # ── Camera ────────────────────────────────────────────────────────────────

    def on_camera_move(self, zoom: float) -> None:
        self.state.zoom_level = zoom
        self._debouncer.on_camera_move(zoom)

    def on_camera_idle(self) -> None:
        self._debouncer.on_camera_idle()

    def _on_camera_settled(self, request: FetchRequest) -> None:
        if self._closed or not self.state.show_cluster_layer:
            return
        self._spawn(self._fetch_clusters(request))

    # ── Cluster fetch + reconciliation ────────────────────────────────────────

    async def _fetch_for_current_camera(self) -> None:
        try:
            viewport = await self._viewport_provider()
        except ViewportUnavailable:
            viewport = None
        if viewport is None:
            self._events.emit("viewport_unavailable", zoom=self.state.zoom_level)
            return

        await self._fetch_clusters(FetchRequest(
            zoom=group_zoom(self.state.zoom_level),
            viewport=viewport,
            radius_km=self.state.radius_km,
        ))

    async def _fetch_clusters(self, request: FetchRequest) -> None:
        self._last_request_id += 1
        request_id = self._last_request_id
        self._events.emit(
            "cluster_fetch_started",
            request_id=request_id,
            zoom=request.zoom,
            radius_km=request.radius_km,
        )

        try:
            response = await self._gateway.fetch_clusters(
                zoom=request.zoom,
                viewport=request.viewport,
                radius_km=float(request.radius_km),
                max_clusters=self.max_clusters,
            )
        except GatewayError as exc:
            self._events.emit("cluster_fetch_failed", request_id=request_id, error=str(exc))
            return

        self.apply_fetched_clusters(response.clusters, request_id=request_id)

    def apply_fetched_clusters(
        self,
        clusters: list[ClusterSummary],
        request_id: Optional[int] = None,
    ) -> bool:
        """
        Replace the visible clusters wholesale.

        Returns False (and changes nothing) when the response belongs to a
        request older than the one already applied, or after close().
        """
        if self._closed:
            return False
        if request_id is None:
            self._last_request_id += 1
            request_id = self._last_request_id

        if request_id <= self.state.clusters_request_id:
            self._events.emit(
                "stale_clusters_discarded",
                request_id=request_id,
                applied_request_id=self.state.clusters_request_id,
            )
            return False

        self.state.last_clusters = list(clusters)
        self.state.clusters_request_id = request_id
        self._events.emit("clusters_applied", request_id=request_id, count=len(clusters))
        return True

    # ── Derived output ────────────────────────────────────────────────────────

    @property
    def circles(self) -> frozenset[Circle]:
        return self._render_cache.get_circles(self.state)

    @property
    def markers(self) -> frozenset[Marker]:
        return self._render_cache.get_markers(self.state)

    @property
    def stats(self) -> dict[str, float]:
        """Stats-panel numbers for the heat-map points inside the coverage radius."""
        center = self.state.user_location
        if center is None:
            return coverage_statistics([])
        return coverage_statistics([
            p for p in self.state.data_points
            if is_within_radius(center, p.coordinates, self.state.radius_km)
        ])

    @property
    def initial_camera(self) -> CameraPosition:
        return initial_camera(self.state.user_location, self.state.data_points, self.state.radius_km)
