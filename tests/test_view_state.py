"""
test_view_state.py — HeatMapViewState reconciliation against the fake backend.

These tests drive the view state the way the map screen does (load, camera
callbacks, layer toggles) and assert on DisplayState, the fake backend's
request log and the recorded events.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from fake_geo_service import cluster_payload
from pulse_heatmap.core.errors import LocationUnavailable
from pulse_heatmap.models.display import HeatMapStatus
from pulse_heatmap.models.geo import GeoCoordinate
from pulse_heatmap.models.heatmap import ClusterResponse, ClusterSummary
from pulse_heatmap.services.gateway import CLUSTERS_PATH, COVERAGE_PATH
from pulse_heatmap.services.location import StaticLocationProvider
from pulse_heatmap.services.render_cache import COVERAGE_CIRCLE_ID
from pulse_heatmap.services.view_state import HeatMapViewState


def _summary(cluster_id, breakdown):
    return ClusterSummary(
        id=cluster_id,
        position=GeoCoordinate(latitude=-26.2, longitude=28.0),
        user_count=sum(breakdown.values()),
        status_breakdown=breakdown,
    )


@pytest.fixture()
async def make_view(gateway, location_provider, viewport, events, settle):
    created = []

    def factory(**overrides):
        kwargs = dict(
            gateway=gateway,
            location_provider=location_provider,
            viewport_provider=viewport,
            radius_km=50,
            show_heatmap_layer=False,
            show_cluster_layer=True,
            settle_seconds=settle,
            events=events,
        )
        kwargs.update(overrides)
        view = HeatMapViewState(**kwargs)
        created.append(view)
        return view

    yield factory
    for view in created:
        await view.aclose()


# ── load / set_radius ────────────────────────────────────────────────────────

class TestLoad:

    async def test_load_populates_state(self, make_view, backend, home):
        backend.points = [{"latitude": -26.1, "longitude": 28.0, "count": 4, "status": "matched"}]
        backend.clusters = [cluster_payload("a", -26.2, 28.0, {"matched": 5, "passed": 3})]
        view = make_view()

        await view.load()
        await view.wait_idle()

        assert view.state.status is HeatMapStatus.LOADED
        assert view.state.user_location == home
        assert len(view.state.data_points) == 1
        assert view.state.coverage.total_users == 16
        assert [c.id for c in view.state.last_clusters] == ["a"]
        assert backend.location_updates[0]["latitude"] == home.latitude

    async def test_location_unavailable_is_error(self, make_view, backend):
        view = make_view(location_provider=StaticLocationProvider(None))
        await view.load()

        assert view.state.status is HeatMapStatus.ERROR
        assert view.state.error == LocationUnavailable.USER_MESSAGE
        assert backend.requests == []

    async def test_location_push_failure_does_not_block(self, make_view, backend, events):
        backend.fail_location = 500
        view = make_view()
        await view.load()
        await view.wait_idle()

        assert view.state.status is HeatMapStatus.LOADED
        assert "location_push_failed" in events.names()

    async def test_heatmap_failure_keeps_previous_data(self, make_view, backend, events):
        backend.points = [{"latitude": -26.1, "longitude": 28.0, "count": 4}]
        view = make_view(show_cluster_layer=False)
        await view.load()
        previous = view.state.data_points

        backend.fail_heatmap = 500
        await view.load()

        assert view.state.status is HeatMapStatus.LOADED
        assert view.state.data_points == previous
        assert "heatmap_data_failed" in events.names()

    async def test_set_radius_reloads_everything(self, make_view, backend):
        view = make_view()
        await view.load()
        await view.wait_idle()
        coverage_circle = next(c for c in view.circles if c.circle_id == COVERAGE_CIRCLE_ID)
        assert coverage_circle.radius_m == 50_000

        await view.set_radius(25)
        await view.wait_idle()

        coverage_calls = backend.calls_to(COVERAGE_PATH)
        cluster_calls = backend.calls_to(CLUSTERS_PATH)
        assert len(coverage_calls) == 2
        assert float(coverage_calls[-1]["radiusKm"]) == 25
        assert float(cluster_calls[-1]["radiusKm"]) == 25
        coverage_circle = next(c for c in view.circles if c.circle_id == COVERAGE_CIRCLE_ID)
        assert coverage_circle.radius_m == 25_000

    async def test_reload_within_min_interval_pushes_location_once(self, make_view, backend, events):
        view = make_view(show_cluster_layer=False)
        await view.load()
        await view.wait_idle()
        await view.load()
        await view.wait_idle()

        assert len(backend.location_updates) == 1
        assert "location_push_failed" not in events.names()

    async def test_undecodable_cluster_body_is_absorbed(self, make_view, backend, events):
        backend.corrupt_clusters = True
        view = make_view()
        await view.load()
        await view.wait_idle()

        assert view.state.status is HeatMapStatus.LOADED
        assert view.state.last_clusters is None
        assert "cluster_fetch_failed" in events.names()

    async def test_replaced_points_redrawn_at_same_count(self, make_view, backend):
        backend.points = [{"latitude": -26.1, "longitude": 28.0, "count": 1}]
        view = make_view(show_heatmap_layer=True, show_cluster_layer=False)
        await view.load()
        circles = {c.circle_id: c for c in view.circles}
        assert circles["heat_point_0"].radius_m == 300

        backend.points = [{"latitude": -26.3, "longitude": 28.2, "count": 30}]
        await view.load()
        circles = {c.circle_id: c for c in view.circles}
        assert circles["heat_point_0"].radius_m == 2000
        assert circles["heat_point_0"].center.latitude == -26.3

    async def test_stats_cover_points_inside_radius(self, make_view, backend):
        backend.points = [
            {"latitude": -26.1, "longitude": 28.0, "count": 4},
            {"latitude": -26.15, "longitude": 28.1, "count": 6},
            {"latitude": 51.5, "longitude": -0.1, "count": 9},
        ]
        view = make_view(show_cluster_layer=False)
        assert view.stats["total_points"] == 0

        await view.load()
        stats = view.stats
        assert stats["total_points"] == 2
        assert stats["total_users"] == 10
        assert stats["max_density"] == 6

    async def test_set_radius_rejects_non_positive(self, make_view):
        with pytest.raises(ValueError):
            await make_view().set_radius(0)


# ── Layer toggles ────────────────────────────────────────────────────────────

class TestLayerToggles:

    async def test_cluster_toggle_without_clusters_fetches_once(self, make_view, backend, viewport):
        view = make_view(show_cluster_layer=False)
        view.state.zoom_level = 11.4

        task = view.toggle_cluster_layer()
        assert task is not None
        await task

        calls = backend.calls_to(CLUSTERS_PATH)
        assert len(calls) == 1
        assert float(calls[0]["zoom"]) == 11.0
        assert float(calls[0]["northLat"]) == pytest.approx(viewport.bounds.north)
        assert view.state.last_clusters == []

    async def test_cluster_toggle_with_clusters_does_not_fetch(self, make_view, backend):
        view = make_view(show_cluster_layer=False)
        view.apply_fetched_clusters([_summary("a", {"matched": 1})])

        assert view.toggle_cluster_layer() is None
        assert view.state.show_cluster_layer is True
        assert backend.calls_to(CLUSTERS_PATH) == []

    async def test_heatmap_toggle_changes_circles(self, make_view, backend):
        backend.points = [{"latitude": -26.1, "longitude": 28.0, "count": 4}]
        view = make_view(show_cluster_layer=False)
        await view.load()
        assert len(view.circles) == 1

        assert view.toggle_heatmap_layer() is True
        assert len(view.circles) == 2


# ── Camera + staleness ───────────────────────────────────────────────────────

class TestCameraFlow:

    async def test_pan_gesture_fetches_once_with_grouped_zoom(self, make_view, backend):
        view = make_view()
        for zoom in (10.2, 10.8, 11.4, 12.1):
            view.on_camera_move(zoom)
        view.on_camera_idle()
        await asyncio.sleep(0.1)
        await view.wait_idle()

        calls = backend.calls_to(CLUSTERS_PATH)
        assert len(calls) == 1
        assert float(calls[0]["zoom"]) == 11.0

    async def test_no_fetch_when_cluster_layer_off(self, make_view, backend):
        view = make_view(show_cluster_layer=False)
        view.on_camera_move(9.0)
        view.on_camera_idle()
        await asyncio.sleep(0.1)
        await view.wait_idle()
        assert backend.calls_to(CLUSTERS_PATH) == []

    async def test_stale_response_discarded(self, make_view, events):
        view = make_view()
        newer = [_summary("new", {"matched": 2})]
        older = [_summary("old", {"passed": 9})]

        assert view.apply_fetched_clusters(newer, request_id=2) is True
        assert view.apply_fetched_clusters(older, request_id=1) is False

        assert [c.id for c in view.state.last_clusters] == ["new"]
        assert view.state.clusters_request_id == 2
        assert events.names().count("stale_clusters_discarded") == 1

    async def test_slow_old_fetch_cannot_overwrite_newer_clusters(self, make_view, events):
        gate = asyncio.Event()

        async def fetch_clusters(zoom, viewport=None, radius_km=None, max_clusters=None):
            if zoom == 2.0:
                await gate.wait()
                return ClusterResponse(clusters=[_summary("old", {"passed": 9})])
            return ClusterResponse(clusters=[_summary("new", {"matched": 2})])

        gateway = AsyncMock()
        gateway.fetch_clusters = AsyncMock(side_effect=fetch_clusters)
        view = make_view(gateway=gateway)

        view.on_camera_move(2.0)
        view.on_camera_idle()
        await asyncio.sleep(0.1)
        view.on_camera_move(5.0)
        view.on_camera_idle()
        await asyncio.sleep(0.1)

        assert gateway.fetch_clusters.await_count == 2
        assert [c.id for c in view.state.last_clusters] == ["new"]

        gate.set()
        await view.wait_idle()

        assert [c.id for c in view.state.last_clusters] == ["new"]
        assert view.state.clusters_request_id == 2
        assert events.names().count("stale_clusters_discarded") == 1

    async def test_cluster_failure_keeps_previous_clusters(self, make_view, backend, events):
        backend.clusters = [cluster_payload("a", -26.2, 28.0, {"matched": 2})]
        view = make_view()
        await view.load()
        await view.wait_idle()
        before = view.markers

        backend.fail_clusters = 500
        view.on_camera_move(14.5)
        view.on_camera_idle()
        await asyncio.sleep(0.1)
        await view.wait_idle()

        assert [c.id for c in view.state.last_clusters] == ["a"]
        assert view.markers is before
        assert "cluster_fetch_failed" in events.names()

    async def test_new_clusters_replace_old_wholesale(self, make_view, backend):
        backend.clusters = [
            cluster_payload("a", -26.2, 28.0, {"matched": 2}),
            cluster_payload("b", -26.3, 28.1, {"passed": 4}),
        ]
        view = make_view()
        await view.load()
        await view.wait_idle()
        assert {m.marker_id for m in view.markers} == {"a", "b"}

        backend.clusters = [cluster_payload("c", -26.0, 28.2, {"unmatched": 7})]
        view.on_camera_move(8.0)
        view.on_camera_idle()
        await asyncio.sleep(0.1)
        await view.wait_idle()
        assert {m.marker_id for m in view.markers} == {"c"}


# ── Teardown ─────────────────────────────────────────────────────────────────

class TestClose:

    async def test_close_stops_camera_fetches(self, make_view, backend, events):
        view = make_view()
        view.on_camera_move(9.0)
        view.on_camera_idle()
        await view.aclose()
        await asyncio.sleep(0.1)

        assert backend.calls_to(CLUSTERS_PATH) == []
        assert view.closed
        assert view.apply_fetched_clusters([_summary("x", {"matched": 1})]) is False
        assert events.names()[-1] == "view_state_closed"

    async def test_async_context_manager(self, gateway, location_provider, viewport, events):
        async with HeatMapViewState(
            gateway, location_provider, viewport, show_cluster_layer=False, events=events
        ) as view:
            await view.load()
            assert view.state.status is HeatMapStatus.LOADED
        assert view.closed

    async def test_load_after_close_is_noop(self, make_view, backend):
        view = make_view()
        await view.aclose()
        await view.load()
        assert backend.requests == []
