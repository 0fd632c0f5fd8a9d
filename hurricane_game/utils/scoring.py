"""
Scoring math for the hurricane prediction game

Pure functions: great-circle distance plus the track and intensity scores a
single checkpoint forecast earns. Aggregates and leaderboards live in
services.repository.
"""

import math
from dataclasses import dataclass

EARTH_RADIUS_NM = 3440.065

MAX_TRACK_SCORE = 1000
MAX_INTENSITY_SCORE = 1000
MAX_TOTAL_SCORE = MAX_TRACK_SCORE + MAX_INTENSITY_SCORE

TRACK_DECAY = 0.01
WIND_WEIGHT = 600
WIND_DECAY = 0.02
PRESSURE_WEIGHT = 400
PRESSURE_DECAY = 0.05


def _round_half_up(value):
    # Python's round() is banker's rounding; scores round .5 up
    return int(math.floor(value + 0.5))


def distance(lat1, lon1, lat2, lon2):
    """
    Great-circle (haversine) distance between two points.

    Returns:
        float: distance in nautical miles
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    # Normalise to [-180, 180) so -80 and 280 are the same meridian
    d_lon = ((lon2 - lon1 + 180.0) % 360.0) - 180.0
    d_lambda = math.radians(d_lon)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # Float error can push a just past 1 near the antipode
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_NM * c


def track_score(distance_error_nm):
    """Track score (0-1000) from positional error in nautical miles"""
    score = MAX_TRACK_SCORE * math.exp(-TRACK_DECAY * distance_error_nm)
    return _round_half_up(max(0.0, score))


def intensity_score(wind_error_mph, pressure_error_mb):
    """
    Intensity score (0-1000) from wind and pressure errors.

    Wind carries 60% of the ceiling and pressure 40%, but wind decays more
    slowly, so an equal numeric wind error costs less than a pressure error.
    """
    wind = WIND_WEIGHT * math.exp(-WIND_DECAY * abs(wind_error_mph))
    pressure = PRESSURE_WEIGHT * math.exp(-PRESSURE_DECAY * abs(pressure_error_mb))
    return _round_half_up(max(0.0, wind + pressure))


@dataclass(frozen=True)
class ScoreBreakdown:
    distance_nm: float
    wind_error: float
    pressure_error: float
    track_score: int
    intensity_score: int

    @property
    def total(self):
        return self.track_score + self.intensity_score


def score_prediction(predicted, actual):
    """
    Score one forecast against the recorded position and intensity.

    Args:
        predicted: mapping with lat, lon, wind_speed, pressure
        actual: mapping with lat, lon, wind_speed, pressure

    Returns:
        ScoreBreakdown
    """
    distance_nm = distance(
        predicted["lat"], predicted["lon"], actual["lat"], actual["lon"]
    )
    wind_error = abs(predicted["wind_speed"] - actual["wind_speed"])
    pressure_error = abs(predicted["pressure"] - actual["pressure"])

    return ScoreBreakdown(
        distance_nm=distance_nm,
        wind_error=wind_error,
        pressure_error=pressure_error,
        track_score=track_score(distance_nm),
        intensity_score=intensity_score(wind_error, pressure_error),
    )
