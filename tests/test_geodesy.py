# tests/test_geodesy.py

import pytest

from triptrack.Services.geodesy import EARTH_RADIUS_M, calculate_haversine_distance, distance


class TestHaversine:
    def test_same_point_is_zero(self) -> None:
        assert calculate_haversine_distance(41.0, 29.0, 41.0, 29.0) == 0.0

    def test_one_degree_of_latitude(self) -> None:
        # pi * R / 180
        assert calculate_haversine_distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(111194.93, rel=1e-6)

    def test_symmetric(self) -> None:
        a = calculate_haversine_distance(41.0, 29.0, 41.01, 29.01)
        b = calculate_haversine_distance(41.01, 29.01, 41.0, 29.0)
        assert a == pytest.approx(b)

    def test_small_displacement_below_jitter_threshold(self) -> None:
        d = distance(41.0, 29.0, 41.00005, 29.00005)
        assert 5.0 < d < 10.0

    def test_antipodes_is_half_circumference(self) -> None:
        assert distance(0.0, 0.0, 0.0, 180.0) == pytest.approx(3.141592653589793 * EARTH_RADIUS_M)
