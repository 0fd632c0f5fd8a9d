"""Scoring math: distance, track score, intensity score."""

import math

import pytest

from hurricane_game.utils.scoring import (
    EARTH_RADIUS_NM,
    MAX_TOTAL_SCORE,
    _round_half_up,
    distance,
    intensity_score,
    score_prediction,
    track_score,
)


class TestDistance:
    def test_identical_points_are_zero(self):
        assert distance(26.1, -81.5, 26.1, -81.5) == 0

    @pytest.mark.parametrize(
        "a, b",
        [
            ((26.0, -81.4), (26.1, -81.5)),
            ((0.0, 0.0), (45.0, 90.0)),
            ((-33.9, 151.2), (51.5, -0.1)),
        ],
    )
    def test_symmetric(self, a, b):
        assert distance(*a, *b) == pytest.approx(distance(*b, *a))

    def test_one_degree_of_latitude(self):
        assert distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(60.04, abs=0.01)

    def test_longitude_wrap_around(self):
        """-80 and 280 are the same meridian"""
        assert distance(25.0, -80.0, 25.0, 280.0) == pytest.approx(0.0, abs=1e-6)

    def test_short_hop_across_the_dateline(self):
        d = distance(10.0, 179.5, 10.0, -179.5)
        assert d == pytest.approx(60.04 * math.cos(math.radians(10.0)), rel=0.01)

    @pytest.mark.parametrize(
        "a, b",
        [((0.0, 0.0), (0.0, 180.0)), ((30.0, 40.0), (-30.0, -140.0))],
    )
    def test_antipodal_points(self, a, b):
        assert distance(*a, *b) == pytest.approx(math.pi * EARTH_RADIUS_NM, rel=1e-9)


class TestTrackScore:
    def test_perfect_track(self):
        assert track_score(0) == 1000

    def test_known_values(self):
        assert track_score(50) == 607
        assert track_score(100) == 368

    def test_strictly_decreasing(self):
        scores = [track_score(d) for d in (0, 1, 5, 10, 50, 100, 200)]
        assert scores == sorted(scores, reverse=True)
        assert len(set(scores)) == len(scores)

    def test_never_negative_and_integer(self):
        for d in (0, 0.5, 10.25, 1000, 25000):
            score = track_score(d)
            assert isinstance(score, int)
            assert score >= 0

    def test_huge_error_is_zero(self):
        assert track_score(20000) == 0


class TestIntensityScore:
    def test_perfect_intensity(self):
        assert intensity_score(0, 0) == 1000

    def test_known_value(self):
        assert intensity_score(10, 10) == 734

    @pytest.mark.parametrize("w, p", [(5, 3), (12.5, -7), (40, 20)])
    def test_sign_symmetric(self, w, p):
        assert intensity_score(w, p) == intensity_score(-w, -p)
        assert intensity_score(w, p) == intensity_score(-w, p)

    @pytest.mark.parametrize("error", [1, 5, 10, 25, 40])
    def test_wind_more_forgiving_than_pressure(self, error):
        assert intensity_score(error, 0) > intensity_score(0, error)

    def test_ordering_flips_past_46_units(self):
        """Past ~46 units a wind miss costs more of its 600 points than a
        pressure miss costs of its 400"""
        assert intensity_score(50, 0) < intensity_score(0, 50)

    def test_never_negative_and_integer(self):
        score = intensity_score(500, 500)
        assert isinstance(score, int)
        assert score >= 0


class TestRounding:
    def test_halves_round_up(self):
        assert _round_half_up(0.5) == 1
        assert _round_half_up(2.5) == 3
        assert _round_half_up(1.49) == 1


class TestScorePrediction:
    def test_close_forecast(self):
        breakdown = score_prediction(
            {"lat": 26.0, "lon": -81.4, "wind_speed": 98, "pressure": 962},
            {"lat": 26.1, "lon": -81.5, "wind_speed": 100, "pressure": 960},
        )

        assert breakdown.distance_nm < 10
        assert breakdown.track_score > 900
        assert breakdown.intensity_score > 900
        assert breakdown.total > 1800
        assert breakdown.wind_error == 2
        assert breakdown.pressure_error == 2

    def test_perfect_forecast(self):
        truth = {"lat": 29.5, "lon": -89.6, "wind_speed": 140, "pressure": 920}
        breakdown = score_prediction(dict(truth), truth)
        assert breakdown.total == MAX_TOTAL_SCORE
