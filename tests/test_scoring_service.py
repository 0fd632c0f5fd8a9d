"""Scoring pass: persistence, idempotence, per-row isolation, catch-up sweep."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from conftest import KATRINA_START
from hurricane_game import db
from hurricane_game.models import Prediction, UserBadge
from hurricane_game.services.badge_service import BadgeEvaluator
from hurricane_game.services.repository import GameRepository
from hurricane_game.services.scoring_service import (
    ScoringService,
    actual_for_checkpoint,
)
from hurricane_game.utils.scoring import score_prediction

KATRINA_0600 = {"lat": 26.1, "lon": -81.5, "wind_speed": 100.0, "pressure": 960.0}


class FlakyRepository(GameRepository):
    """Fails the conditional update for selected prediction ids"""

    def __init__(self, session, fail_ids):
        super().__init__(session)
        self.fail_ids = set(fail_ids)

    def mark_scored(self, prediction_id, actual, breakdown, scored_at=None):
        if prediction_id in self.fail_ids:
            raise OperationalError("UPDATE predictions", {}, Exception("database is locked"))
        return super().mark_scored(prediction_id, actual, breakdown, scored_at)


class BrokenEvaluator:
    def evaluate(self, username, prediction=None):
        raise OperationalError("SELECT", {}, Exception("connection reset"))


def _service(repository=None):
    repository = repository or GameRepository(db.session)
    return ScoringService(repository, BadgeEvaluator(repository))


class TestActualForCheckpoint:
    def test_uses_prediction_checkpoint(self, katrina):
        assert actual_for_checkpoint(katrina, "0600") == KATRINA_0600

    def test_final_checkpoint_is_not_the_base(self, katrina):
        """Both the base and the last prediction checkpoint are labelled 0000"""
        assert actual_for_checkpoint(katrina, "0000")["lat"] == 29.5

    def test_unknown_label(self, katrina):
        assert actual_for_checkpoint(katrina, "0900") is None


class TestScoreCheckpoint:
    def test_scores_and_persists_actuals(self, app, add_prediction):
        prediction = add_prediction()
        prediction_id = prediction.id

        result = _service().score_checkpoint("katrina-2005", "0600", KATRINA_0600)

        assert result.scored == 1
        assert result.failed == 0
        scored = db.session.get(Prediction, prediction_id)
        assert scored.score > 1800
        assert scored.score == scored.track_score + scored.intensity_score
        assert scored.actual_lat == 26.1
        assert scored.actual_pressure == 960.0
        assert scored.distance_error_nm < 10
        assert scored.scored_at is not None

    def test_only_touches_matching_checkpoint(self, app, add_prediction):
        add_prediction(checkpoint="0600")
        other = add_prediction(checkpoint="1200")
        other_id = other.id

        _service().score_checkpoint("katrina-2005", "0600", KATRINA_0600)

        assert db.session.get(Prediction, other_id).score is None

    def test_rerun_is_a_no_op(self, app, add_prediction):
        prediction = add_prediction()
        prediction_id = prediction.id
        service = _service()

        service.score_checkpoint("katrina-2005", "0600", KATRINA_0600)
        first_score = db.session.get(Prediction, prediction_id).score

        # Different truth on the second pass must not rescore the row
        result = service.score_checkpoint(
            "katrina-2005", "0600", dict(KATRINA_0600, lat=10.0)
        )

        assert result.scored == 0
        assert db.session.get(Prediction, prediction_id).score == first_score

    def test_conditional_update_skips_scored_rows(self, app, add_prediction):
        prediction = add_prediction(score=1234)
        repository = GameRepository(db.session)

        updated = repository.mark_scored(
            prediction.id,
            KATRINA_0600,
            score_prediction(KATRINA_0600, KATRINA_0600),
        )

        assert updated is False
        assert db.session.get(Prediction, prediction.id).score == 1234

    def test_awards_badges_after_scoring(self, app, add_prediction):
        add_prediction(username="alice")
        add_prediction(
            username="bob",
            predicted_lat=26.1,
            predicted_lon=-81.5,
            predicted_wind_speed=100.0,
            predicted_pressure=960.0,
        )

        result = _service().score_checkpoint("katrina-2005", "0600", KATRINA_0600)

        assert result.badges_awarded["alice"] == ["first_prediction"]
        assert set(result.badges_awarded["bob"]) == {
            "first_prediction",
            "diamond_prediction",
            "oracle",
            "perfect_storm",
        }
        assert UserBadge.query.filter_by(username="bob").count() == 4


class TestFailureIsolation:
    def test_one_failed_row_does_not_stop_the_batch(self, app, add_prediction):
        alice = add_prediction(username="alice").id
        bob = add_prediction(username="bob").id
        carol = add_prediction(username="carol").id

        repository = FlakyRepository(db.session, fail_ids={bob})
        result = _service(repository).score_checkpoint(
            "katrina-2005", "0600", KATRINA_0600
        )

        assert result.scored == 2
        assert result.failed == 1
        assert db.session.get(Prediction, alice).score is not None
        assert db.session.get(Prediction, bob).score is None
        assert db.session.get(Prediction, carol).score is not None

    def test_failed_row_is_picked_up_by_the_next_pass(self, app, add_prediction):
        bob = add_prediction(username="bob").id

        flaky = FlakyRepository(db.session, fail_ids={bob})
        _service(flaky).score_checkpoint("katrina-2005", "0600", KATRINA_0600)

        result = _service().score_checkpoint("katrina-2005", "0600", KATRINA_0600)
        assert result.scored == 1
        assert db.session.get(Prediction, bob).score is not None

    def test_badge_failure_keeps_the_score(self, app, add_prediction):
        prediction_id = add_prediction().id
        service = ScoringService(GameRepository(db.session), BrokenEvaluator())

        result = service.score_checkpoint("katrina-2005", "0600", KATRINA_0600)

        assert result.scored == 1
        assert result.badges_awarded == {}
        assert db.session.get(Prediction, prediction_id).score is not None

    @pytest.mark.parametrize(
        "actual",
        [
            None,
            {"lat": 26.1, "lon": -81.5, "wind_speed": 100.0},
            dict(KATRINA_0600, pressure="960"),
            dict(KATRINA_0600, lat=float("nan")),
            dict(KATRINA_0600, wind_speed=True),
        ],
    )
    def test_malformed_actual_scores_nothing(self, app, add_prediction, actual):
        first = add_prediction(username="alice").id
        second = add_prediction(username="bob").id

        with pytest.raises(ValueError):
            _service().score_checkpoint("katrina-2005", "0600", actual)

        assert db.session.get(Prediction, first).score is None
        assert db.session.get(Prediction, second).score is None


class TestScoreMissedCheckpoints:
    def test_scores_only_closed_checkpoints(self, app, schedule, add_prediction):
        for checkpoint in ("0600", "1200", "1800"):
            add_prediction(checkpoint=checkpoint)
        add_prediction(storm_id="andrew-1992", checkpoint="0600")

        now = KATRINA_START + timedelta(hours=13)
        results = _service().score_missed_checkpoints(schedule, now)

        scored = {(r.storm_id, r.checkpoint) for r in results if r.scored}
        assert scored == {("katrina-2005", "0600"), ("katrina-2005", "1200")}
        assert Prediction.query.filter(Prediction.score.is_(None)).count() == 2

    def test_open_checkpoint_left_alone_under_rotation(self, app, schedule, add_prediction):
        from hurricane_game.utils.game_clock import parse_rotation

        epoch = KATRINA_START - timedelta(hours=6)
        rotation = parse_rotation("day", epoch)
        add_prediction(checkpoint="0600")
        add_prediction(checkpoint="1200")
        add_prediction(storm_id="andrew-1992", checkpoint="0000")

        # Day 0 of the rotation is Katrina; 08:00 has 0600 closed, 1200 open
        now = epoch + timedelta(hours=8)
        results = _service().score_missed_checkpoints(schedule, now, rotation)

        scored = {(r.storm_id, r.checkpoint) for r in results if r.scored}
        assert scored == {("katrina-2005", "0600"), ("andrew-1992", "0000")}
