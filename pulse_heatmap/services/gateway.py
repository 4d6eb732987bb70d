"""
gateway.py — Async HTTP gateway to the statistics / location backend.

This is the only module that talks to the network. Everything above it
(view state, debouncer) sees typed models or one of two exceptions:

  NetworkError  — transport failure or timeout (httpx.TransportError)
  ServiceError  — non-2xx status, undecodable body, malformed JSON, or a
                  payload that fails model validation. A response is parsed
                  completely or not at all: there are no partial cluster lists.

Endpoints
─────────
  GET  /statistics/heatmap/optimized   viewport clusters   → ClusterResponse
  GET  /statistics/heatmap             raw density points  → list[HeatMapDataPoint]
  GET  /statistics/location-coverage   coverage summary    → LocationCoverageData
  PUT  /users/me/location              push device position

The backend wraps most payloads as {"data": ...}; unwrapping tolerates
both shapes.

Runtime modes (set via GEO_MOCK_MODE env var):
  - REAL mode (default): calls the backend at settings.api_base_url.
  - MOCK mode: returns deterministic clusters / points derived from a
    SHA-256 seed of the request. Same request, same answer — useful for
    tests, demos and local dev without a running backend.

Tests swap the network for a FastAPI fake via `transport=ASGITransport(app)`.
"""

import hashlib
import logging
import random
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from pulse_heatmap.core.config import settings
from pulse_heatmap.core.errors import NetworkError, ServiceError
from pulse_heatmap.models.geo import GeoCoordinate, ViewportBounds
from pulse_heatmap.models.heatmap import (
    ClusterResponse,
    ClusterSummary,
    HeatMapDataPoint,
    HeatMapFilters,
    LocationCoverageData,
    LocationCoverageFilters,
    PerformanceMetrics,
)
from pulse_heatmap.services.geo_math import bounding_box
from pulse_heatmap.services.zoom import DEFAULT_CAMERA_TARGET

logger = logging.getLogger(__name__)

CLUSTERS_PATH = "/statistics/heatmap/optimized"
HEATMAP_PATH = "/statistics/heatmap"
COVERAGE_PATH = "/statistics/location-coverage"
USER_LOCATION_PATH = "/users/me/location"

_MOCK_STATUSES = ("matched", "likedMe", "unmatched", "passed")


def _unwrap(payload: Any) -> Any:
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


class HeatMapGateway:
    """
    Thin async wrapper around the statistics REST API.

    A fresh httpx.AsyncClient is opened per call; the map issues at most
    one cluster request per camera settle.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: Optional[float] = None,
        mock_mode: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.api_token = api_token if api_token is not None else settings.api_token
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self.mock_mode = settings.geo_mock_mode if mock_mode is None else mock_mode
        self._transport = transport

        if self.mock_mode:
            logger.warning("GEO_MOCK_MODE enabled — heat-map data is synthetic")

    # ── HTTP plumbing ─────────────────────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Send one request and return the decoded JSON body (None when empty)."""
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers=self._headers(),
        ) as client:
            try:
                response = await client.request(method, path, params=params, json=json)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "Heat-map API error: %s %s → %s — %s",
                    method,
                    path,
                    exc.response.status_code,
                    exc.response.text[:200],
                )
                raise ServiceError(
                    f"{method} {path} failed with HTTP {exc.response.status_code}",
                    status_code=exc.response.status_code,
                ) from exc
            except httpx.TransportError as exc:
                logger.error("Heat-map API request failed: %s %s — %s", method, path, exc)
                raise NetworkError(f"{method} {path} failed: {exc}") from exc
            except httpx.HTTPError as exc:
                # Undecodable body, redirect loop and the like: the backend answered badly.
                logger.error("Heat-map API response unusable: %s %s — %s", method, path, exc)
                raise ServiceError(f"{method} {path} returned an unusable response: {exc}") from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ServiceError(
                f"{method} {path} returned malformed JSON",
                status_code=response.status_code,
            ) from exc

    # ── Clusters ──────────────────────────────────────────────────────────────

    async def fetch_clusters(
        self,
        zoom: float,
        viewport: Optional[ViewportBounds] = None,
        radius_km: Optional[float] = None,
        max_clusters: Optional[int] = None,
    ) -> ClusterResponse:
        """
        Fetch server-side clusters for a viewport.

        Args:
            zoom:         Grouped zoom level (see zoom.group_zoom).
            viewport:     Visible bounds; omitted → backend clusters globally.
            radius_km:    Coverage radius the density is computed against.
            max_clusters: Upper bound on returned clusters.

        Raises:
            NetworkError, ServiceError
        """
        if max_clusters is None:
            max_clusters = settings.max_clusters

        if self.mock_mode:
            return self._mock_clusters(zoom, viewport, radius_km, max_clusters)

        params: dict[str, Any] = {"zoom": zoom, "maxClusters": max_clusters}
        if viewport is not None:
            params.update(viewport.to_query_params())
        if radius_km is not None:
            params["radiusKm"] = radius_km

        data = _unwrap(await self._request("GET", CLUSTERS_PATH, params=params))

        if not isinstance(data, dict) or not isinstance(data.get("clusters"), list):
            logger.warning("Cluster response carried no cluster list — treating as empty")
            return ClusterResponse(clusters=[])

        try:
            result = ClusterResponse.model_validate(
                {"clusters": data["clusters"], "performance": data.get("performance") or {}}
            )
        except ValidationError as exc:
            raise ServiceError(f"Invalid cluster payload: {exc.error_count()} error(s)") from exc

        logger.debug(
            "Fetched %d clusters (%sms query, %sms clustering)",
            len(result.clusters),
            result.performance.query_time_ms,
            result.performance.clustering_time_ms,
        )
        return result

    # ── Raw heat-map + coverage ───────────────────────────────────────────────

    async def fetch_heatmap_points(
        self,
        bounds: Optional[ViewportBounds] = None,
        filters: Optional[HeatMapFilters] = None,
    ) -> list[HeatMapDataPoint]:
        if self.mock_mode:
            return self._mock_points(bounds)

        params: dict[str, Any] = {}
        if bounds is not None:
            params.update({
                "northLatitude": bounds.north,
                "southLatitude": bounds.south,
                "eastLongitude": bounds.east,
                "westLongitude": bounds.west,
            })
        if filters is not None:
            params.update(filters.to_query_params())

        data = _unwrap(await self._request("GET", HEATMAP_PATH, params=params))
        if not isinstance(data, list):
            return []

        try:
            points = [HeatMapDataPoint.model_validate(item) for item in data]
        except ValidationError as exc:
            raise ServiceError(f"Invalid heat-map payload: {exc.error_count()} error(s)") from exc

        logger.debug("Fetched %d heat map points", len(points))
        return points

    async def fetch_location_coverage(
        self,
        center: GeoCoordinate,
        radius_km: float,
        filters: Optional[LocationCoverageFilters] = None,
    ) -> LocationCoverageData:
        if self.mock_mode:
            return self._mock_coverage(center, radius_km)

        params: dict[str, Any] = {
            "centerLatitude": center.latitude,
            "centerLongitude": center.longitude,
            "radiusKm": radius_km,
        }
        if filters is not None:
            params.update(filters.to_query_params())

        data = _unwrap(await self._request("GET", COVERAGE_PATH, params=params))
        if not isinstance(data, dict):
            raise ServiceError("Location coverage response carried no data")

        try:
            return LocationCoverageData.model_validate(data)
        except ValidationError as exc:
            raise ServiceError(f"Invalid coverage payload: {exc.error_count()} error(s)") from exc

    # ── Location push ─────────────────────────────────────────────────────────

    async def update_user_location(
        self,
        coordinates: GeoCoordinate,
        accuracy: Optional[float] = None,
    ) -> None:
        """Push the device position to the backend. Raises on failure; callers decide."""
        if self.mock_mode:
            return

        body: dict[str, Any] = {
            "latitude": coordinates.latitude,
            "longitude": coordinates.longitude,
        }
        if accuracy is not None:
            body["accuracy"] = accuracy

        await self._request("PUT", USER_LOCATION_PATH, json=body)
        logger.debug("User location updated: %s", coordinates)

    # ── Mock mode ─────────────────────────────────────────────────────────────

    @staticmethod
    def _seeded(*parts: Any) -> random.Random:
        digest = hashlib.sha256(repr(parts).encode("utf-8")).hexdigest()
        return random.Random(int(digest[:16], 16))

    def _mock_clusters(
        self,
        zoom: float,
        viewport: Optional[ViewportBounds],
        radius_km: Optional[float],
        max_clusters: int,
    ) -> ClusterResponse:
        bounds = viewport or bounding_box(DEFAULT_CAMERA_TARGET, radius_km or 50)
        rng = self._seeded("clusters", zoom, bounds.to_query_params(), radius_km)

        clusters: list[ClusterSummary] = []
        for i in range(min(max_clusters, rng.randint(3, 10))):
            breakdown = {s: rng.randint(0, 15) for s in _MOCK_STATUSES}
            total = sum(breakdown.values())
            clusters.append(ClusterSummary(
                id=f"mock_{int(zoom)}_{i}",
                position=GeoCoordinate(
                    latitude=rng.uniform(bounds.south, bounds.north),
                    longitude=rng.uniform(min(bounds.west, bounds.east), max(bounds.west, bounds.east)),
                ),
                user_count=total,
                density_score=max(1, total // 3),
                status_breakdown=breakdown,
                average_age=round(rng.uniform(21, 38), 1),
            ))

        return ClusterResponse(clusters=clusters, performance=PerformanceMetrics())

    def _mock_points(self, bounds: Optional[ViewportBounds]) -> list[HeatMapDataPoint]:
        box = bounds or bounding_box(DEFAULT_CAMERA_TARGET, 50)
        rng = self._seeded("points", box.to_query_params())
        return [
            HeatMapDataPoint(
                coordinates=GeoCoordinate(
                    latitude=rng.uniform(box.south, box.north),
                    longitude=rng.uniform(min(box.west, box.east), max(box.west, box.east)),
                ),
                density=rng.randint(1, 30),
                label=rng.choice(_MOCK_STATUSES),
            )
            for _ in range(rng.randint(5, 25))
        ]

    def _mock_coverage(self, center: GeoCoordinate, radius_km: float) -> LocationCoverageData:
        rng = self._seeded("coverage", center.as_tuple(), radius_km)
        return LocationCoverageData(
            center=center,
            radius_km=radius_km,
            user_counts={s: rng.randint(0, 40) for s in _MOCK_STATUSES},
        )
