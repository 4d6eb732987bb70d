"""
zoom.py — Zoom bucketing and camera placement helpers.

group_zoom() is what keeps panning cheap: the map reports a continuous
zoom level on every animation frame, but the clustering backend only ever
sees one of six bucket midpoints (2, 5, 8, 11, 14, 17). Two camera
positions in the same bucket therefore produce identical cluster queries.

  zoom  1 ─ 3.99  → 2
  zoom  4 ─ 6.99  → 5
  zoom  7 ─ 9.99  → 8
  zoom 10 ─ 12.99 → 11
  zoom 13 ─ 15.99 → 14
  zoom 16 ─ 18    → 17

All functions here are pure.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from pulse_heatmap.models.geo import GeoCoordinate
from pulse_heatmap.models.heatmap import HeatMapDataPoint

MIN_ZOOM = 1.0
MAX_ZOOM = 18.0
ZOOM_BUCKET_WIDTH = 3

# Zoom used when user and data sit in different hemispheres.
OVERVIEW_ZOOM = 6.0

# Fallback camera target when neither user location nor data is known.
DEFAULT_CAMERA_TARGET = GeoCoordinate(latitude=-26.2041028, longitude=28.0473051)

# (max radius km, zoom) — first row whose radius bound is ≥ the request wins.
_RADIUS_ZOOM = [
    (5,   14.0),
    (10,  13.0),
    (25,  11.0),
    (50,  10.0),
    (100, 9.0),
    (200, 8.0),
]


def group_zoom(zoom: float) -> float:
    """Map a continuous zoom level to the midpoint of its width-3 bucket."""
    clamped = min(MAX_ZOOM, max(MIN_ZOOM, zoom))
    bucket = math.floor((clamped - MIN_ZOOM) / ZOOM_BUCKET_WIDTH)
    return float(bucket * ZOOM_BUCKET_WIDTH + 2)


def zoom_for_radius(radius_km: float) -> float:
    """Camera zoom that frames a coverage circle of radius_km."""
    for max_radius, zoom in _RADIUS_ZOOM:
        if radius_km <= max_radius:
            return zoom
    return OVERVIEW_ZOOM


@dataclass(frozen=True)
class CameraPosition:
    target: GeoCoordinate
    zoom: float


def initial_camera(
    user_location: GeoCoordinate | None,
    data_points: Sequence[HeatMapDataPoint],
    radius_km: float,
) -> CameraPosition:
    """
    Where to point the camera when the map first opens.

    If the user and the first data point lie in opposite hemispheres the
    data is almost certainly somewhere the user is not (test accounts,
    travel); centre on the mean of the data at overview zoom instead.
    """
    if not data_points:
        return CameraPosition(user_location or DEFAULT_CAMERA_TARGET, zoom_for_radius(radius_km))

    first = data_points[0].coordinates
    user_lat = user_location.latitude if user_location else 0.0
    mismatch = (user_lat > 0 and first.latitude < 0) or (user_lat < 0 and first.latitude > 0)
    if mismatch:
        n = len(data_points)
        center = GeoCoordinate(
            latitude=sum(p.coordinates.latitude for p in data_points) / n,
            longitude=sum(p.coordinates.longitude for p in data_points) / n,
        )
        return CameraPosition(center, OVERVIEW_ZOOM)

    return CameraPosition(user_location or first, zoom_for_radius(radius_km))
