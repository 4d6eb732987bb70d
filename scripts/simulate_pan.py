#!/usr/bin/env python3
"""
simulate_pan.py — Drive the heat-map view state through a scripted pan.

Usage (from the repo root):
    python scripts/simulate_pan.py                  # mock backend, Johannesburg
    python scripts/simulate_pan.py --live           # real backend from API_BASE_URL
    python scripts/simulate_pan.py --radius 25 --lat -33.92 --lng 18.42

Prerequisites:
    • `pip install -e .`
    • API_BASE_URL / API_TOKEN env vars (or .env file) when using --live

What this script does
─────────────────────
  1. load()                 location → coverage + heat-map points → clusters
  2. a pinch-zoom gesture   dozens of camera moves, one idle
  3. a second pan           into another zoom bucket
  4. prints circles / markers after each step and the fetch count

Useful for eyeballing the debouncer against a real backend: a whole
gesture should produce exactly one cluster request.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

# Allow running from the repo root without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

load_dotenv()

from pulse_heatmap.core.config import settings  # noqa: E402
from pulse_heatmap.core.logging import configure_logging  # noqa: E402
from pulse_heatmap.models.geo import GeoCoordinate, ViewportBounds  # noqa: E402
from pulse_heatmap.services.gateway import HeatMapGateway  # noqa: E402
from pulse_heatmap.services.location import StaticLocationProvider  # noqa: E402
from pulse_heatmap.services.view_state import HeatMapViewState  # noqa: E402


def _summary(view: HeatMapViewState, step: str) -> None:
    state = view.state
    print(f"\n── {step} " + "─" * max(0, 60 - len(step)))
    print(f"  status        {state.status.value}")
    print(f"  zoom          {state.zoom_level:.1f}")
    print(f"  clusters      {state.cluster_count} (request #{state.clusters_request_id})")
    print(f"  visible users {state.visible_users}")
    if state.coverage is not None:
        print(f"  coverage      {state.coverage.total_users} users in {state.coverage.radius_km:g} km")
    print(f"  circles       {len(view.circles)}")
    print(f"  in radius     {view.stats['total_points']} points, {view.stats['total_users']} users")
    for marker in sorted(view.markers, key=lambda m: -m.user_count)[:5]:
        print(f"    {marker.marker_id:<14} {marker.user_count:>4} users  {marker.status:<10} {marker.size.value}")


async def run(args: argparse.Namespace) -> None:
    center = GeoCoordinate(latitude=args.lat, longitude=args.lng)
    gateway = HeatMapGateway(mock_mode=not args.live)
    viewport = {"bounds": ViewportBounds.around(center, args.radius)}

    async def visible_region():
        return viewport["bounds"]

    async with HeatMapViewState(
        gateway,
        StaticLocationProvider(center),
        visible_region,
        radius_km=args.radius,
        show_heatmap_layer=True,
    ) as view:
        await view.load()
        await view.wait_idle()
        _summary(view, "initial load")

        # Pinch in: many frames inside one gesture.
        steps = 40
        for i in range(steps + 1):
            zoom = 6.0 + 6.0 * i / steps
            viewport["bounds"] = ViewportBounds.around(center, max(1.0, args.radius / 2 ** (zoom - 6)))
            view.on_camera_move(zoom)
        view.on_camera_idle()
        await asyncio.sleep(settings.camera_settle_seconds * 2)
        await view.wait_idle()
        _summary(view, "after pinch to zoom 12")

        # Pan east at street level.
        for i in range(20):
            shifted = GeoCoordinate(latitude=center.latitude, longitude=center.longitude + 0.002 * i)
            viewport["bounds"] = ViewportBounds.around(shifted, 2)
            view.on_camera_move(14.6)
        view.on_camera_idle()
        await asyncio.sleep(settings.camera_settle_seconds * 2)
        await view.wait_idle()
        _summary(view, "after pan at zoom 14.6")

        print(f"\n  cluster fetches issued: {view.debouncer.fetches_emitted} camera settle(s)")


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate map camera gestures against the heat-map view state")
    parser.add_argument("--live", action="store_true", help="Call the real backend instead of mock mode")
    parser.add_argument("--radius", type=int, default=settings.default_radius_km, help="Coverage radius in km")
    parser.add_argument("--lat", type=float, default=-26.2041028)
    parser.add_argument("--lng", type=float, default=28.0473051)
    parser.add_argument("--debug", action="store_true", help="Log every state transition")
    args = parser.parse_args()

    configure_logging(debug=args.debug or settings.debug)
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
