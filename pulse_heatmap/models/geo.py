"""
geo.py — Coordinate and viewport value types.

Both models are frozen: a GeoCoordinate or ViewportBounds is a value, so
it can be hashed into the render-cache key and shared between the
debouncer, the gateway and the display state as-is.

Wire formats
────────────
  GeoCoordinate   {"latitude": -26.2, "longitude": 28.05}
  ViewportBounds  {"northEast": {...}, "southWest": {...}}

The cluster endpoint takes the viewport flattened as northLat / southLat /
eastLng / westLng query parameters (see ViewportBounds.to_query_params).
"""

from pydantic import BaseModel, ConfigDict, Field

# Rough km → degree conversion for bounding boxes. Good enough for small
# radii; varies with latitude.
KM_TO_DEGREE = 0.009


class GeoCoordinate(BaseModel):
    """A WGS84 point."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)

    def __str__(self) -> str:
        return f"({self.latitude:.5f}, {self.longitude:.5f})"


class ViewportBounds(BaseModel):
    """The geographic rectangle currently visible on the map."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    north_east: GeoCoordinate = Field(..., alias="northEast")
    south_west: GeoCoordinate = Field(..., alias="southWest")

    @property
    def north(self) -> float:
        return self.north_east.latitude

    @property
    def south(self) -> float:
        return self.south_west.latitude

    @property
    def east(self) -> float:
        return self.north_east.longitude

    @property
    def west(self) -> float:
        return self.south_west.longitude

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west > self.east

    @property
    def center(self) -> GeoCoordinate:
        lat = (self.north + self.south) / 2
        if self.crosses_antimeridian:
            lng = (self.west + self.east + 360) / 2
            if lng > 180:
                lng -= 360
        else:
            lng = (self.west + self.east) / 2
        return GeoCoordinate(latitude=lat, longitude=lng)

    def contains(self, point: GeoCoordinate) -> bool:
        if not self.south <= point.latitude <= self.north:
            return False
        if self.crosses_antimeridian:
            return point.longitude >= self.west or point.longitude <= self.east
        return self.west <= point.longitude <= self.east

    def to_query_params(self) -> dict[str, float]:
        return {
            "northLat": self.north,
            "southLat": self.south,
            "eastLng": self.east,
            "westLng": self.west,
        }

    @classmethod
    def from_edges(
        cls, north: float, south: float, east: float, west: float
    ) -> "ViewportBounds":
        return cls(
            north_east=GeoCoordinate(latitude=north, longitude=east),
            south_west=GeoCoordinate(latitude=south, longitude=west),
        )

    @classmethod
    def around(cls, center: GeoCoordinate, radius_km: float) -> "ViewportBounds":
        """Approximate square box of half-side radius_km around center, clamped to the globe."""
        offset = radius_km * KM_TO_DEGREE
        return cls.from_edges(
            north=min(90.0, center.latitude + offset),
            south=max(-90.0, center.latitude - offset),
            east=min(180.0, center.longitude + offset),
            west=max(-180.0, center.longitude - offset),
        )
