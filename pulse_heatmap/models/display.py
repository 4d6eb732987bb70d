"""
display.py — Screen-side state and the drawables derived from it.

DisplayState is owned by exactly one HeatMapViewState and only changes
through its operations. Circle / Marker are frozen dataclasses so they can
live in frozensets and be compared cheaply by whatever renders them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pulse_heatmap.models.geo import GeoCoordinate
from pulse_heatmap.models.heatmap import (
    ClusterSummary,
    HeatMapDataPoint,
    LocationCoverageData,
)


class HeatMapStatus(str, Enum):
    INITIAL = "initial"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class MarkerSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


@dataclass(frozen=True)
class Circle:
    circle_id: str
    center: GeoCoordinate
    radius_m: float
    fill_color: str            # "#RRGGBB"
    fill_opacity: float
    stroke_color: str
    stroke_width: int = 1


@dataclass(frozen=True)
class Marker:
    marker_id: str
    position: GeoCoordinate
    size: MarkerSize
    color: str
    user_count: int
    status: str


@dataclass
class DisplayState:
    """Everything that decides what the heat map shows."""

    radius_km: int
    show_heatmap_layer: bool = False
    show_cluster_layer: bool = True
    zoom_level: float = 6.0
    user_location: Optional[GeoCoordinate] = None
    # None means "never fetched", [] means "fetched, nothing there".
    last_clusters: Optional[list[ClusterSummary]] = None
    # Id of the request whose response produced last_clusters (0 = none yet).
    clusters_request_id: int = 0
    data_points: list[HeatMapDataPoint] = field(default_factory=list)
    # Bumped every time data_points is replaced, even with the same length.
    data_points_revision: int = 0
    coverage: Optional[LocationCoverageData] = None
    status: HeatMapStatus = HeatMapStatus.INITIAL
    error: Optional[str] = None

    @property
    def cluster_count(self) -> int:
        return len(self.last_clusters) if self.last_clusters is not None else 0

    @property
    def visible_users(self) -> int:
        if not self.last_clusters:
            return 0
        return sum(c.user_count for c in self.last_clusters)


@dataclass(frozen=True)
class RenderCacheEntry:
    cache_key: str
    circles: frozenset[Circle]
    markers: frozenset[Marker]
