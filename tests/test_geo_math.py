"""
test_geo_math.py — Great-circle distance and coverage statistics.
"""

import pytest

from pulse_heatmap.models.geo import KM_TO_DEGREE, GeoCoordinate
from pulse_heatmap.models.heatmap import HeatMapDataPoint
from pulse_heatmap.services.geo_math import (
    bounding_box,
    coverage_statistics,
    distance_km,
    is_within_radius,
)

PRETORIA = GeoCoordinate(latitude=-25.7479, longitude=28.2293)


def _points(*densities):
    return [
        HeatMapDataPoint(coordinates=GeoCoordinate(latitude=0, longitude=i), density=d)
        for i, d in enumerate(densities)
    ]


class TestDistance:

    def test_zero_for_same_point(self, home):
        assert distance_km(home, home) == 0

    def test_johannesburg_to_pretoria(self, home):
        assert distance_km(home, PRETORIA) == pytest.approx(54, abs=2)

    def test_symmetric(self, home):
        assert distance_km(home, PRETORIA) == pytest.approx(distance_km(PRETORIA, home))

    def test_within_radius(self, home):
        assert is_within_radius(home, PRETORIA, 60)
        assert not is_within_radius(home, PRETORIA, 40)


class TestDensityHelpers:

    def test_bounding_box_uses_degree_constant(self, home):
        box = bounding_box(home, 10)
        assert box.north == pytest.approx(home.latitude + 10 * KM_TO_DEGREE)
        assert box.west == pytest.approx(home.longitude - 10 * KM_TO_DEGREE)
        assert box.contains(home)

    def test_coverage_statistics(self):
        stats = coverage_statistics(_points(2, 4, 12))
        assert stats["total_points"] == 3
        assert stats["total_users"] == 18
        assert stats["average_density"] == pytest.approx(6)
        assert stats["max_density"] == 12
        assert stats["min_density"] == 2

    def test_coverage_statistics_empty(self):
        assert coverage_statistics([])["total_users"] == 0
