"""
pytest configuration and shared fixtures for the heat-map client tests.

Key concern: tests must not require a running backend. We achieve this by:
  1. Forcing GEO_MOCK_MODE off, so the gateway really speaks HTTP.
  2. Routing that HTTP through httpx.ASGITransport into the FastAPI fake
     in fake_geo_service.py, which tests configure per case.
  3. Injecting a RecordingEventSink so assertions read state transitions
     instead of log lines.
"""

import os

import httpx
import pytest

# Set env vars BEFORE importing the package so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ["GEO_MOCK_MODE"] = "false"

from pulse_heatmap.core.events import RecordingEventSink  # noqa: E402
from pulse_heatmap.models.geo import GeoCoordinate, ViewportBounds  # noqa: E402
from pulse_heatmap.services.gateway import HeatMapGateway  # noqa: E402
from pulse_heatmap.services.location import StaticLocationProvider  # noqa: E402

from fake_geo_service import FakeGeoBackend, create_app  # noqa: E402

JOHANNESBURG = GeoCoordinate(latitude=-26.20, longitude=28.05)
SETTLE = 0.02


@pytest.fixture()
def backend():
    return FakeGeoBackend()


@pytest.fixture()
def gateway(backend):
    """HeatMapGateway wired to the fake backend through ASGITransport."""
    return HeatMapGateway(
        base_url="http://test",
        api_token="test-token",
        mock_mode=False,
        transport=httpx.ASGITransport(app=create_app(backend)),
    )


@pytest.fixture()
def events():
    return RecordingEventSink()


@pytest.fixture()
def location_provider():
    return StaticLocationProvider(JOHANNESBURG)


class StaticViewport:
    """Viewport provider returning fixed bounds; counts how often it was read."""

    def __init__(self, bounds=None):
        self.bounds = bounds or ViewportBounds.around(JOHANNESBURG, 20)
        self.reads = 0

    async def __call__(self):
        self.reads += 1
        return self.bounds


@pytest.fixture()
def viewport():
    return StaticViewport()


@pytest.fixture()
def home():
    return JOHANNESBURG


@pytest.fixture()
def settle():
    """Settle window short enough to keep camera tests fast."""
    return SETTLE
