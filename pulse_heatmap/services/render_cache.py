"""
render_cache.py — Memoized circles / markers for the heat-map display.

The consumer asks for drawables on every rebuild (every camera frame in a
typical map widget). Geometry only needs recomputing when something that
changes the picture changed, so the last result is kept under a cache key
built from:

  user location · radius · heatmap toggle · cluster toggle ·
  cluster count · data-point count · data-point revision ·
  applied cluster request id

Zoom is NOT part of the key: a pinch animation changes zoom
on every frame but not a single circle. On a hit the very same frozenset
objects are returned, so a renderer can short-circuit on identity.

Density buckets (heatmap layer)
───────────────────────────────
  density ≤ 2   → 300 m   blue
  density ≤ 5   → 500 m   green
  density ≤ 10  → 800 m   yellow
  density ≤ 20  → 1200 m  orange
  otherwise     → 2000 m  red

Cluster markers: > 50 users large, > 10 medium, else small; colour from
the cluster's dominant status.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional

from pulse_heatmap.core.events import EventSink, LoggingEventSink
from pulse_heatmap.models.display import (
    Circle,
    DisplayState,
    Marker,
    MarkerSize,
    RenderCacheEntry,
)
from pulse_heatmap.models.geo import GeoCoordinate

logger = logging.getLogger(__name__)

COVERAGE_CIRCLE_ID = "coverage_circle"
COVERAGE_COLOR = "#6E3BFF"

# (max density, radius metres, colour)
_DENSITY_BUCKETS = [
    (2,  300.0,  "#2196F3"),
    (5,  500.0,  "#4CAF50"),
    (10, 800.0,  "#FFEB3B"),
    (20, 1200.0, "#FF9800"),
]
_DENSITY_MAX = (2000.0, "#F44336")

_STATUS_COLORS = {
    "matched":   "#4CAF50",
    "likedme":   "#FF9800",
    "unmatched": "#2196F3",
    "available": "#2196F3",
    "passed":    "#F44336",
}
_DEFAULT_MARKER_COLOR = "#9E9E9E"


def density_style(density: int) -> tuple[float, str]:
    """Radius in metres and colour for a density value."""
    for max_density, radius, color in _DENSITY_BUCKETS:
        if density <= max_density:
            return radius, color
    return _DENSITY_MAX


def marker_size(user_count: int) -> MarkerSize:
    if user_count > 50:
        return MarkerSize.LARGE
    if user_count > 10:
        return MarkerSize.MEDIUM
    return MarkerSize.SMALL


def status_color(status: str) -> str:
    return _STATUS_COLORS.get(status.lower().replace("_", ""), _DEFAULT_MARKER_COLOR)


def cache_key(state: DisplayState) -> str:
    """Deterministic digest of every appearance-affecting field except zoom."""
    loc = state.user_location
    parts = [
        f"{loc.latitude:.6f},{loc.longitude:.6f}" if loc else "-",
        str(state.radius_km),
        "H1" if state.show_heatmap_layer else "H0",
        "C1" if state.show_cluster_layer else "C0",
        str(state.cluster_count),
        str(len(state.data_points)),
        str(state.data_points_revision),
        str(state.clusters_request_id),
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def _heat_circle(circle_id: str, center: GeoCoordinate, density: int) -> Circle:
    radius, color = density_style(density)
    return Circle(
        circle_id=circle_id,
        center=center,
        radius_m=radius,
        fill_color=color,
        fill_opacity=0.3,
        stroke_color=color,
        stroke_width=1,
    )


def build_circles(state: DisplayState) -> frozenset[Circle]:
    circles: set[Circle] = set()

    if state.user_location is not None:
        circles.add(Circle(
            circle_id=COVERAGE_CIRCLE_ID,
            center=state.user_location,
            radius_m=state.radius_km * 1000.0,
            fill_color=COVERAGE_COLOR,
            fill_opacity=0.1,
            stroke_color=COVERAGE_COLOR,
            stroke_width=2,
        ))

    if state.show_heatmap_layer:
        # Clusters carry a backend density score; fall back to raw points
        # before the first cluster response has arrived.
        if state.last_clusters:
            for cluster in state.last_clusters:
                circles.add(_heat_circle(f"heat_{cluster.id}", cluster.position, cluster.density_score))
        else:
            for i, point in enumerate(state.data_points):
                circles.add(_heat_circle(f"heat_point_{i}", point.coordinates, point.density))

    return frozenset(circles)


def build_markers(state: DisplayState) -> frozenset[Marker]:
    if not state.show_cluster_layer or not state.last_clusters:
        return frozenset()
    return frozenset(
        Marker(
            marker_id=cluster.id,
            position=cluster.position,
            size=marker_size(cluster.user_count),
            color=status_color(cluster.dominant_status),
            user_count=cluster.user_count,
            status=cluster.dominant_status,
        )
        for cluster in state.last_clusters
    )


class RenderCache:
    """Single-entry memo of the last computed drawables."""

    def __init__(self, events: Optional[EventSink] = None) -> None:
        self._entry: Optional[RenderCacheEntry] = None
        self._events = events or LoggingEventSink(logger)
        self.misses = 0

    @property
    def entry(self) -> Optional[RenderCacheEntry]:
        return self._entry

    def invalidate(self) -> None:
        self._entry = None

    def get_circles(self, state: DisplayState) -> frozenset[Circle]:
        return self._resolve(state).circles

    def get_markers(self, state: DisplayState) -> frozenset[Marker]:
        return self._resolve(state).markers

    def _resolve(self, state: DisplayState) -> RenderCacheEntry:
        key = cache_key(state)
        if self._entry is not None and self._entry.cache_key == key:
            self._events.emit("render_cache_hit", key=key[:12])
            return self._entry

        self.misses += 1
        entry = RenderCacheEntry(
            cache_key=key,
            circles=build_circles(state),
            markers=build_markers(state),
        )
        self._events.emit(
            "render_cache_miss",
            key=key[:12],
            circles=len(entry.circles),
            markers=len(entry.markers),
        )
        # An empty result usually means "nothing loaded yet", not "final".
        if entry.circles or entry.markers:
            self._entry = entry
        return entry
