import math
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from hurricane_game import db

# JSON field -> (model attribute, expected type). Checkpoint also accepts the
# legacy "timeframe" key.
PAYLOAD_FIELDS = {
    "username": ("username", str),
    "stormId": ("storm_id", str),
    "checkpoint": ("checkpoint", str),
    "lat": ("predicted_lat", float),
    "lon": ("predicted_lon", float),
    "windSpeed": ("predicted_wind_speed", float),
    "pressure": ("predicted_pressure", float),
}


class PredictionValidationError(ValueError):
    """Submission rejected; the message is safe to return to the caller"""


class Prediction(db.Model):
    __tablename__ = "predictions"

    id = db.Column(db.Integer, primary_key=True)

    # Prediction identification
    username = db.Column(db.String(80), nullable=False)
    storm_id = db.Column(db.String(64), nullable=False)
    checkpoint = db.Column(db.String(4), nullable=False)

    # Forecast
    predicted_lat = db.Column(db.Float, nullable=False)
    predicted_lon = db.Column(db.Float, nullable=False)
    predicted_wind_speed = db.Column(db.Float, nullable=False)
    predicted_pressure = db.Column(db.Float, nullable=False)

    # Results (filled once by the scoring pass)
    score = db.Column(db.Integer, nullable=True)
    actual_lat = db.Column(db.Float, nullable=True)
    actual_lon = db.Column(db.Float, nullable=True)
    actual_wind_speed = db.Column(db.Float, nullable=True)
    actual_pressure = db.Column(db.Float, nullable=True)
    distance_error_nm = db.Column(db.Float, nullable=True)
    track_score = db.Column(db.Integer, nullable=True)
    intensity_score = db.Column(db.Integer, nullable=True)

    # Timestamps
    submitted_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    scored_at = db.Column(db.DateTime, nullable=True)

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint(
            "username", "storm_id", "checkpoint", name="unique_user_storm_checkpoint"
        ),
        db.Index("idx_prediction_username", "username"),
        db.Index("idx_prediction_storm_checkpoint", "storm_id", "checkpoint"),
        db.Index("idx_prediction_score", "score"),
    )

    def __repr__(self):
        return f"<Prediction {self.username} {self.storm_id}/{self.checkpoint} score={self.score}>"

    @staticmethod
    def parse_payload(data):
        """
        Validate a submission body and map it onto model attributes.

        Raises:
            PredictionValidationError: a field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise PredictionValidationError("Request body must be a JSON object")

        data = dict(data)
        if "checkpoint" not in data and "timeframe" in data:
            data["checkpoint"] = data["timeframe"]

        missing = [
            key for key in PAYLOAD_FIELDS if data.get(key) is None or data.get(key) == ""
        ]
        if missing:
            raise PredictionValidationError(
                f"Missing required fields: {', '.join(missing)}"
            )

        values = {}
        for key, (attribute, expected) in PAYLOAD_FIELDS.items():
            value = data[key]
            if expected is str:
                if not isinstance(value, str):
                    raise PredictionValidationError(f"Field '{key}' must be a string")
                values[attribute] = value.strip()
            else:
                # bool is an int subclass; reject it explicitly
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise PredictionValidationError(f"Field '{key}' must be a number")
                try:
                    number = float(value)
                except OverflowError:
                    number = math.inf
                if not math.isfinite(number):
                    raise PredictionValidationError(
                        f"Field '{key}' must be a finite number"
                    )
                values[attribute] = number

        if not -90 <= values["predicted_lat"] <= 90:
            raise PredictionValidationError("Field 'lat' must be between -90 and 90")

        return values

    @staticmethod
    def create_prediction(data, storm, active_checkpoint):
        """
        Create a prediction for the currently open checkpoint.

        Args:
            data: raw JSON body
            storm: the current StormSchedule (or None)
            active_checkpoint: label of the open checkpoint (or None)

        Returns:
            (prediction, message); prediction is None when rejected
        """
        try:
            values = Prediction.parse_payload(data)
        except PredictionValidationError as e:
            return None, str(e)

        if storm is None or values["storm_id"] != storm.id:
            return None, f"Storm '{values['storm_id']}' is not the active storm"

        if active_checkpoint is None:
            return None, "No checkpoint is currently open for predictions"

        if values["checkpoint"] != active_checkpoint:
            return (
                None,
                f"Checkpoint '{values['checkpoint']}' is not open "
                f"(active checkpoint is '{active_checkpoint}')",
            )

        existing = Prediction.query.filter_by(
            username=values["username"],
            storm_id=values["storm_id"],
            checkpoint=values["checkpoint"],
        ).first()
        if existing:
            return None, "Prediction already submitted for this checkpoint"

        prediction = Prediction(**values)
        db.session.add(prediction)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race with an identical submission
            db.session.rollback()
            return None, "Prediction already submitted for this checkpoint"

        return prediction, "Prediction submitted successfully"

    @staticmethod
    def get_user_predictions(username):
        """Get all predictions by a user, newest first"""
        return (
            Prediction.query.filter_by(username=username)
            .order_by(Prediction.submitted_at.desc(), Prediction.id.desc())
            .all()
        )

    def to_dict(self):
        """Convert prediction to dictionary for API responses"""
        return {
            "id": self.id,
            "username": self.username,
            "storm_id": self.storm_id,
            "checkpoint": self.checkpoint,
            "predicted_lat": self.predicted_lat,
            "predicted_lon": self.predicted_lon,
            "predicted_wind_speed": self.predicted_wind_speed,
            "predicted_pressure": self.predicted_pressure,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "score": self.score,
            "actual_lat": self.actual_lat,
            "actual_lon": self.actual_lon,
            "actual_wind_speed": self.actual_wind_speed,
            "actual_pressure": self.actual_pressure,
            "distance_error_nm": (
                round(self.distance_error_nm, 2)
                if self.distance_error_nm is not None
                else None
            ),
            "track_score": self.track_score,
            "intensity_score": self.intensity_score,
            "scored_at": self.scored_at.isoformat() if self.scored_at else None,
        }
