"""
errors.py — Exception taxonomy for the heat-map client.

  HeatMapError
  ├── GatewayError           backend call failed (absorbed, stale data kept)
  │   ├── NetworkError       transport failure / timeout
  │   └── ServiceError       non-2xx response or malformed payload
  ├── LocationUnavailable    no GPS fix or permission (shown to the user)
  └── ViewportUnavailable    map platform view not ready (fetch skipped)

Only LocationUnavailable ever reaches the UI as an error state; every
other failure is logged at the point it happens and the previous display
state is kept.
"""

from typing import Optional


class HeatMapError(Exception):
    """Base class for all heat-map client errors."""

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class GatewayError(HeatMapError):
    """A call to the statistics / location backend failed."""


class NetworkError(GatewayError):
    """Transport-level failure: DNS, connection refused, timeout."""


class ServiceError(GatewayError):
    """The backend answered, but not with something we can use."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message, code=code)
        self.status_code = status_code


class LocationUnavailable(HeatMapError):
    """No device location: services disabled or permission denied."""

    USER_MESSAGE = (
        "Unable to get current location. "
        "Please enable location services and grant permission."
    )

    def __init__(self, message: str = USER_MESSAGE) -> None:
        super().__init__(message, code="location_unavailable")


class ViewportUnavailable(HeatMapError):
    """The map has not produced visible bounds yet."""

    def __init__(self, message: str = "Map viewport is not available yet") -> None:
        super().__init__(message, code="viewport_unavailable")
