"""
geo_math.py — Great-circle distance and small density utilities.

Spherical-earth approximation (R = 6371 km); accurate to well under 1 %
at the distances a dating radius covers.
"""

from __future__ import annotations

import math
from typing import Sequence

from pulse_heatmap.models.geo import GeoCoordinate, ViewportBounds
from pulse_heatmap.models.heatmap import HeatMapDataPoint

EARTH_RADIUS_KM = 6371.0


def distance_km(a: GeoCoordinate, b: GeoCoordinate) -> float:
    """Haversine distance between two points."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = math.radians(b.latitude - a.latitude)
    d_lng = math.radians(b.longitude - a.longitude)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def is_within_radius(center: GeoCoordinate, point: GeoCoordinate, radius_km: float) -> bool:
    return distance_km(center, point) <= radius_km


def bounding_box(center: GeoCoordinate, radius_km: float) -> ViewportBounds:
    return ViewportBounds.around(center, radius_km)


def coverage_statistics(points: Sequence[HeatMapDataPoint]) -> dict[str, float]:
    """Summary numbers for the stats panel."""
    if not points:
        return {
            "total_points": 0,
            "total_users": 0,
            "average_density": 0.0,
            "max_density": 0,
            "min_density": 0,
        }
    densities = [p.density for p in points]
    return {
        "total_points": len(points),
        "total_users": sum(densities),
        "average_density": sum(densities) / len(densities),
        "max_density": max(densities),
        "min_density": min(densities),
    }
