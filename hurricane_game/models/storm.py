"""
Static storm schedule records.

These are loaded once at startup by utils.schedule_loader and never written
to the database; the schedule is the only process-wide state the app keeps.
"""

from dataclasses import dataclass, replace
from datetime import datetime

# Prediction checkpoint labels in game order, with the hour (since gameStart)
# at which each one closes and becomes scoreable
CHECKPOINT_LABELS = ("0600", "1200", "1800", "0000")
CHECKPOINT_CLOSING_HOURS = {"0600": 6, "1200": 12, "1800": 18, "0000": 24}

KIND_BASE = "base"
KIND_PREDICTION = "prediction"


@dataclass(frozen=True)
class Checkpoint:
    label: str
    kind: str
    lat: float
    lon: float
    wind_speed: float
    pressure: float
    category: int

    @property
    def is_prediction(self):
        return self.kind == KIND_PREDICTION

    def to_dict(self):
        return {
            "label": self.label,
            "kind": self.kind,
            "lat": self.lat,
            "lon": self.lon,
            "wind_speed": self.wind_speed,
            "pressure": self.pressure,
            "category": self.category,
        }


@dataclass(frozen=True)
class StormSchedule:
    id: str
    name: str
    year: int
    game_start: datetime
    game_end: datetime
    checkpoints: tuple = ()

    def __repr__(self):
        return f"<StormSchedule {self.id}>"

    @property
    def base_checkpoint(self):
        for checkpoint in self.checkpoints:
            if checkpoint.kind == KIND_BASE:
                return checkpoint
        return None

    @property
    def prediction_checkpoints(self):
        return tuple(c for c in self.checkpoints if c.is_prediction)

    def get_checkpoint(self, label):
        """Get the prediction checkpoint with this label, or None"""
        for checkpoint in self.prediction_checkpoints:
            if checkpoint.label == label:
                return checkpoint
        return None

    def rebased(self, game_start, duration):
        """Copy of this storm with its game window moved to start at game_start"""
        return replace(
            self, game_start=game_start, game_end=game_start + duration
        )

    def track(self, revealed=()):
        """Base position followed by the revealed checkpoints, in game order"""
        points = [self.base_checkpoint] if self.base_checkpoint else []
        points.extend(c for c in self.prediction_checkpoints if c.label in revealed)
        return [point.to_dict() for point in points]

    def to_dict(self, include_checkpoints=True, revealed=()):
        """
        Serialize the storm.

        Args:
            include_checkpoints: include the base position and checkpoint list
            revealed: labels of closed checkpoints whose historical values may
                be shown; every other checkpoint carries only its label
        """
        data = {
            "id": self.id,
            "name": self.name,
            "year": self.year,
            "game_start": self.game_start.isoformat(),
            "game_end": self.game_end.isoformat(),
        }
        if include_checkpoints:
            base = self.base_checkpoint
            data["base"] = base.to_dict() if base else None

            checkpoints = []
            for c in self.prediction_checkpoints:
                if c.label in revealed:
                    checkpoints.append(dict(c.to_dict(), revealed=True))
                else:
                    checkpoints.append({"label": c.label, "kind": c.kind, "revealed": False})
            data["checkpoints"] = checkpoints
        return data
