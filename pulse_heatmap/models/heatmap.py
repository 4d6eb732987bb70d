"""
heatmap.py — Pydantic models for the statistics / heat-map API payloads.

Everything here is parsed straight from backend JSON, so field aliases
follow the API's camelCase while the Python attributes stay snake_case
(populate_by_name lets tests and the mock gateway build them either way).

Cluster payload (GET /statistics/heatmap/optimized)
───────────────────────────────────────────────────
  {
    "data": {
      "clusters": [
        {
          "id": "c_12_4",
          "lat": -26.19, "lng": 28.04,
          "userCount": 8,
          "densityScore": 6,
          "averageAge": 27.5,
          "genderDistribution": {"female": 5, "male": 3},
          "ageDistribution": {"18-24": 2, "25-34": 6},
          "statusBreakdown": {"matched": 5, "passed": 3}
        }
      ],
      "performance": {"queryTimeMs": 12, "clusteringTimeMs": 4}
    }
  }

Clusters are privacy-preserving aggregates: the client never sees an
individual user's location, only a count at a cluster centroid. Cluster ids
are assigned per response and are NOT stable across zoom buckets, so a
new response always replaces the previous one wholesale.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from pulse_heatmap.models.geo import GeoCoordinate

# Status label preferred when two statuses are tied for the largest count.
PREFERRED_STATUS = "matched"


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MatchStatus(str, Enum):
    NONE = "none"
    LIKED_YOU = "likedYou"
    MATCHED = "matched"
    REJECTED = "rejected"


# ── Clusters ──────────────────────────────────────────────────────────────────

class ClusterSummary(_ApiModel):
    """One backend-aggregated group of nearby users."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: str
    position: GeoCoordinate
    user_count: int = Field(..., ge=0)
    density_score: int = 0
    status_breakdown: dict[str, int] = Field(default_factory=dict)
    average_age: float = 0.0
    gender_distribution: dict[str, int] = Field(default_factory=dict)
    age_distribution: dict[str, int] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_position(cls, data: Any) -> Any:
        # The API sends lat/lng at the top level instead of a nested position.
        if isinstance(data, dict) and "position" not in data and "lat" in data:
            data = dict(data)
            data["position"] = {"latitude": data.pop("lat"), "longitude": data.pop("lng", None)}
        return data

    @model_validator(mode="after")
    def _breakdown_matches_count(self) -> "ClusterSummary":
        if self.status_breakdown and sum(self.status_breakdown.values()) != self.user_count:
            raise ValueError(
                f"statusBreakdown of cluster {self.id!r} sums to "
                f"{sum(self.status_breakdown.values())}, expected {self.user_count}"
            )
        return self

    @property
    def dominant_status(self) -> str:
        """
        The status with the largest count.

        An exact tie that includes "matched" resolves to "matched"; any other
        tie resolves to whichever tied label the backend listed first.
        """
        if not self.status_breakdown:
            return "unknown"
        top = max(self.status_breakdown.values())
        leaders = [s for s, n in self.status_breakdown.items() if n == top]
        if PREFERRED_STATUS in leaders:
            return PREFERRED_STATUS
        return leaders[0]


class PerformanceMetrics(_ApiModel):
    query_time_ms: float = 0
    clustering_time_ms: float = 0


class ClusterResponse(BaseModel):
    """Parsed reply of the optimized-clustering endpoint."""

    clusters: list[ClusterSummary]
    performance: PerformanceMetrics = Field(default_factory=PerformanceMetrics)

    @property
    def total_users(self) -> int:
        return sum(c.user_count for c in self.clusters)


# ── Raw heat-map points ───────────────────────────────────────────────────────

class HeatMapDataPoint(_ApiModel):
    """User density at one location (pre-clustering heat-map feed)."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    coordinates: GeoCoordinate
    density: int = Field(..., ge=0)
    radius: float = 1.0
    label: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _from_api_format(cls, data: Any) -> Any:
        # API format: {latitude, longitude, count, status}
        # Stored format: {coordinates, density, radius, label}
        if isinstance(data, dict) and "coordinates" not in data and "latitude" in data:
            return {
                "coordinates": {
                    "latitude": data.get("latitude"),
                    "longitude": data.get("longitude"),
                },
                "density": data.get("count", 0),
                "radius": data.get("radius", 1.0),
                "label": data.get("status"),
            }
        return data


# ── Coverage ──────────────────────────────────────────────────────────────────

class LocationCoverageData(_ApiModel):
    """How many users sit inside the coverage radius around the user."""

    center: GeoCoordinate
    radius_km: float
    user_counts: dict[str, int] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _from_api_format(cls, data: Any) -> Any:
        if isinstance(data, dict) and "radius" in data and "radiusKm" not in data:
            data = dict(data)
            data["radiusKm"] = data.pop("radius")
        return data

    @property
    def total_users(self) -> int:
        return sum(self.user_counts.get(k, 0) for k in ("matched", "likedMe", "unmatched", "passed"))

    @property
    def average_density(self) -> float:
        """Users per km of radius; 0 when the area is empty."""
        if self.total_users == 0 or self.radius_km <= 0:
            return 0.0
        return self.total_users / self.radius_km


# ── Query filters ─────────────────────────────────────────────────────────────

class LocationCoverageFilters(_ApiModel):
    min_age: int = Field(default=18, ge=18)
    max_age: int = Field(default=99, le=120)
    match_status: Optional[MatchStatus] = None
    interests: Optional[list[str]] = None
    include_online_only: bool = False

    def to_query_params(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class HeatMapFilters(LocationCoverageFilters):
    max_distance: int = Field(default=50, ge=1)
