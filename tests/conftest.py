"""Shared test fixtures."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from config import TestingConfig
from hurricane_game import create_app, db
from hurricane_game.models import Prediction
from hurricane_game.utils import timezone_utils
from hurricane_game.utils.schedule_loader import parse_schedule

KATRINA_START = datetime(2024, 1, 1, 6, 0, tzinfo=timezone.utc)
ANDREW_START = datetime(2024, 1, 2, 6, 0, tzinfo=timezone.utc)

STORMS = [
    {
        "id": "katrina-2005",
        "name": "Katrina",
        "year": 2005,
        "gameStart": "2024-01-01T06:00:00.000Z",
        "gameEnd": "2024-01-02T06:00:00.000Z",
        "timeframes": [
            {"timeframe": "0000", "type": "base", "lat": 25.4, "lon": -80.3, "windSpeed": 80, "pressure": 986, "category": 1},
            {"timeframe": "0600", "type": "prediction", "lat": 26.1, "lon": -81.5, "windSpeed": 100, "pressure": 960, "category": 3},
            {"timeframe": "1200", "type": "prediction", "lat": 27.2, "lon": -83.4, "windSpeed": 115, "pressure": 950, "category": 4},
            {"timeframe": "1800", "type": "prediction", "lat": 28.8, "lon": -85.9, "windSpeed": 125, "pressure": 942, "category": 4},
            {"timeframe": "0000", "type": "prediction", "lat": 29.5, "lon": -89.6, "windSpeed": 140, "pressure": 920, "category": 5},
        ],
    },
    {
        "id": "andrew-1992",
        "name": "Andrew",
        "year": 1992,
        "gameStart": "2024-01-02T06:00:00.000Z",
        "gameEnd": "2024-01-03T06:00:00.000Z",
        "timeframes": [
            {"timeframe": "0000", "type": "base", "lat": 25.5, "lon": -78.2, "windSpeed": 50, "pressure": 1005, "category": 0},
            {"timeframe": "0600", "type": "prediction", "lat": 25.8, "lon": -79.8, "windSpeed": 90, "pressure": 975, "category": 2},
            {"timeframe": "1200", "type": "prediction", "lat": 25.5, "lon": -80.3, "windSpeed": 145, "pressure": 922, "category": 5},
            {"timeframe": "1800", "type": "prediction", "lat": 26.1, "lon": -81.2, "windSpeed": 150, "pressure": 920, "category": 5},
            {"timeframe": "0000", "type": "prediction", "lat": 26.7, "lon": -82.5, "windSpeed": 120, "pressure": 945, "category": 4},
        ],
    },
]


class FrozenClock:
    """Stands in for timezone_utils.get_utc_time"""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def set(self, now):
        self.now = now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def schedule():
    return parse_schedule(STORMS)


@pytest.fixture
def katrina(schedule):
    return schedule[0]


@pytest.fixture
def andrew(schedule):
    return schedule[1]


@pytest.fixture
def schedule_file(tmp_path):
    path = tmp_path / "storms.json"
    path.write_text(json.dumps({"storms": STORMS}), encoding="utf-8")
    return path


@pytest.fixture
def clock(monkeypatch):
    """Freeze the game clock one hour into Katrina (checkpoint 0600 open)"""
    frozen = FrozenClock(KATRINA_START + timedelta(hours=1))
    monkeypatch.setattr(timezone_utils, "get_utc_time", frozen)
    return frozen


def _make_app(monkeypatch, schedule_path):
    monkeypatch.setattr(TestingConfig, "STORM_SCHEDULE_PATH", str(schedule_path))
    return create_app("testing")


@pytest.fixture
def app(monkeypatch, schedule_file, clock):
    """Application with an in-memory database, pushed app context"""
    app = _make_app(monkeypatch, schedule_file)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def degraded_app(monkeypatch, tmp_path, clock):
    """Application whose schedule file does not exist"""
    app = _make_app(monkeypatch, tmp_path / "missing.json")
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def add_prediction(app):
    """Insert a prediction row directly, bypassing the game clock"""

    def _add(username="alice", storm_id="katrina-2005", checkpoint="0600", **fields):
        values = {
            "predicted_lat": 26.0,
            "predicted_lon": -81.4,
            "predicted_wind_speed": 98.0,
            "predicted_pressure": 962.0,
        }
        values.update(fields)
        prediction = Prediction(
            username=username, storm_id=storm_id, checkpoint=checkpoint, **values
        )
        db.session.add(prediction)
        db.session.commit()
        return prediction

    return _add
