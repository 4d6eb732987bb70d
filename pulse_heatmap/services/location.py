"""
location.py — Device location sources and the smart location-push policy.

The platform GPS / permission layer is not part of this package; anything
that can answer "where is the device?" plugs in as a LocationProvider.
Returning None means "no fix": services disabled, permission denied, or
timeout. The view state turns that into the one user-visible error.

LocationTracker decides when a new fix is worth sending to the backend:

  never sent before                  → send
  ≥ max interval since last send     → send (forced refresh)
  < min interval since last send     → skip (rate limit)
  moved ≥ threshold km               → send
  otherwise                          → skip
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

from pulse_heatmap.core.config import settings
from pulse_heatmap.core.errors import GatewayError
from pulse_heatmap.models.geo import GeoCoordinate
from pulse_heatmap.services.gateway import HeatMapGateway
from pulse_heatmap.services.geo_math import distance_km

logger = logging.getLogger(__name__)


class LocationProvider(Protocol):
    async def get_current_location(self) -> Optional[GeoCoordinate]: ...


class StaticLocationProvider:
    """Always reports the same position (or none). For demos and tests."""

    def __init__(self, location: Optional[GeoCoordinate]) -> None:
        self.location = location

    async def get_current_location(self) -> Optional[GeoCoordinate]:
        return self.location


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class LocationTracker:
    """Rate-limited, distance-filtered location pushes."""

    def __init__(
        self,
        gateway: HeatMapGateway,
        threshold_km: Optional[float] = None,
        min_interval: Optional[timedelta] = None,
        max_interval: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._gateway = gateway
        self.threshold_km = (
            threshold_km if threshold_km is not None else settings.location_update_threshold_km
        )
        self.min_interval = min_interval or timedelta(minutes=settings.location_min_update_minutes)
        self.max_interval = max_interval or timedelta(minutes=settings.location_max_update_minutes)
        self._clock = clock

        self.last_sent_location: Optional[GeoCoordinate] = None
        self.last_sent_at: Optional[datetime] = None
        self.last_error: Optional[GatewayError] = None

    def should_send(self, location: GeoCoordinate) -> bool:
        if self.last_sent_location is None or self.last_sent_at is None:
            return True

        elapsed = self._clock() - self.last_sent_at
        if elapsed >= self.max_interval:
            return True
        if elapsed < self.min_interval:
            return False

        return distance_km(self.last_sent_location, location) >= self.threshold_km

    async def track(self, location: GeoCoordinate, accuracy: Optional[float] = None) -> bool:
        """
        Push `location` if the policy allows it. Returns True when a push happened.

        A False result with last_error set means the push was attempted and failed;
        with last_error None it was skipped by policy.
        """
        self.last_error = None
        if not self.should_send(location):
            return False
        return await self.force_update(location, accuracy)

    async def force_update(self, location: GeoCoordinate, accuracy: Optional[float] = None) -> bool:
        """Push regardless of policy. Failures are logged and reported as False."""
        try:
            await self._gateway.update_user_location(location, accuracy=accuracy)
        except GatewayError as exc:
            logger.warning("Location update failed: %s", exc)
            self.last_error = exc
            return False

        self.last_error = None
        self.last_sent_location = location
        self.last_sent_at = self._clock()
        logger.debug("Location sent: %s", location)
        return True
