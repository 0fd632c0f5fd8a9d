"""
Scoring pass

Scores every unscored prediction of one closed checkpoint against the
historical truth from the storm schedule, then hands each freshly scored
prediction to the badge evaluator. Rows are committed one at a time so a
failure on one prediction never blocks the rest of the batch.
"""

import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from hurricane_game.utils import game_clock
from hurricane_game.utils.cache_utils import LEADERBOARD_CACHE, invalidate_model_cache
from hurricane_game.utils.logging_config import ContextualLogger, get_logger
from hurricane_game.utils.performance import PerformanceMonitor
from hurricane_game.utils.scoring import score_prediction

logger = get_logger(__name__)


@dataclass
class ScoringResult:
    storm_id: str
    checkpoint: str
    scored: int = 0
    skipped: int = 0
    failed: int = 0
    badges_awarded: dict = field(default_factory=dict)

    def to_dict(self):
        return asdict(self)


ACTUAL_KEYS = ("lat", "lon", "wind_speed", "pressure")


def validate_actual(actual):
    """
    Check the historical values a scoring pass compares against.

    Raises:
        ValueError: actual is not a mapping of finite numbers for every key
    """
    if not isinstance(actual, Mapping):
        raise ValueError("actual must be a mapping")

    for key in ACTUAL_KEYS:
        value = actual.get(key)
        finite = False
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            try:
                finite = math.isfinite(value)
            except OverflowError:
                finite = False
        if not finite:
            raise ValueError(f"actual '{key}' must be a finite number, got {value!r}")


def actual_for_checkpoint(storm, label):
    """
    Historical truth for a checkpoint, as the mapping score_prediction expects.

    Returns None when the storm has no prediction checkpoint with that label.
    """
    checkpoint = storm.get_checkpoint(label) if storm is not None else None
    if checkpoint is None:
        return None

    return {
        "lat": checkpoint.lat,
        "lon": checkpoint.lon,
        "wind_speed": checkpoint.wind_speed,
        "pressure": checkpoint.pressure,
    }


class ScoringService:
    """Runs scoring passes through an injected repository"""

    def __init__(self, repository, evaluator=None):
        self.repository = repository
        self.evaluator = evaluator

    def score_checkpoint(self, storm_id, checkpoint, actual):
        """
        Score all unscored predictions for (storm_id, checkpoint).

        Args:
            storm_id: storm the predictions belong to
            checkpoint: checkpoint label, e.g. "0600"
            actual: mapping with lat, lon, wind_speed, pressure

        Returns:
            ScoringResult

        Raises:
            ValueError: actual is malformed; nothing is scored
        """
        validate_actual(actual)

        log = ContextualLogger(__name__, {"storm": storm_id, "checkpoint": checkpoint})
        result = ScoringResult(storm_id=storm_id, checkpoint=checkpoint)

        with PerformanceMonitor(f"score_checkpoint {storm_id}/{checkpoint}"):
            predictions = self.repository.unscored_predictions(storm_id, checkpoint)
            if not predictions:
                log.debug("No unscored predictions")
                return result

            log.info(f"Scoring {len(predictions)} predictions")

            for prediction in predictions:
                # Read before the commit in mark_scored expires the instance
                prediction_id = prediction.id
                username = prediction.username

                try:
                    breakdown = score_prediction(
                        {
                            "lat": prediction.predicted_lat,
                            "lon": prediction.predicted_lon,
                            "wind_speed": prediction.predicted_wind_speed,
                            "pressure": prediction.predicted_pressure,
                        },
                        actual,
                    )
                    updated = self.repository.mark_scored(prediction_id, actual, breakdown)
                except SQLAlchemyError as e:
                    self.repository.rollback()
                    result.failed += 1
                    log.error(f"Failed to score prediction {prediction_id}: {e}")
                    continue

                if not updated:
                    # Another pass got there first
                    result.skipped += 1
                    continue

                result.scored += 1
                log.debug(
                    f"Prediction {prediction_id} ({username}) scored {breakdown.total} "
                    f"(track {breakdown.track_score}, intensity {breakdown.intensity_score})"
                )

                self._evaluate_badges(username, prediction, result, log)

        if result.scored:
            invalidate_model_cache(LEADERBOARD_CACHE)

        log.info(
            f"Scoring pass complete: {result.scored} scored, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    def _evaluate_badges(self, username, prediction, result, log):
        if self.evaluator is None:
            return

        try:
            awarded = self.evaluator.evaluate(username, prediction)
        except SQLAlchemyError as e:
            self.repository.rollback()
            log.error(f"Badge evaluation failed for {username}: {e}")
            return

        if awarded:
            result.badges_awarded.setdefault(username, []).extend(awarded)

    def score_storm_checkpoint(self, storm, checkpoint):
        """Score a checkpoint using the storm schedule's recorded values"""
        actual = actual_for_checkpoint(storm, checkpoint)
        if actual is None:
            raise ValueError(f"Storm '{storm.id}' has no checkpoint '{checkpoint}'")
        return self.score_checkpoint(storm.id, checkpoint, actual)

    def score_missed_checkpoints(self, schedule, now, rotation=None):
        """
        Score every checkpoint that has already closed.

        Manual recovery for boundaries crossed while the process was down.
        The checkpoint that is still open for the current storm is left
        alone; with rotation enabled, storms outside the current period are
        treated as fully closed.

        Returns:
            list of ScoringResult, one per checkpoint examined
        """
        current = game_clock.current_storm(schedule, now, rotation)

        results = []
        for storm in schedule:
            if rotation is None:
                window = storm
            elif current is not None and current.id == storm.id:
                window = current
            else:
                window = None

            for checkpoint in storm.prediction_checkpoints:
                if (
                    window is not None
                    and game_clock.checkpoint_closing_time(window, checkpoint.label) > now
                ):
                    continue
                results.append(self.score_storm_checkpoint(storm, checkpoint.label))

        scored = sum(r.scored for r in results)
        logger.info(
            f"Missed-checkpoint sweep examined {len(results)} checkpoints, "
            f"scored {scored} predictions"
        )
        return results
