"""
Persistence collaborator for the scoring pass and the badge evaluator

GameRepository wraps a SQLAlchemy session. Services receive one at
construction instead of reaching for module-level state, so tests can hand
them a repository bound to the test database or a stub that fails on demand.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from hurricane_game.models import BadgeDefinition, Prediction, UserBadge, UserStats

logger = logging.getLogger(__name__)


def _rank_rows(rows):
    """
    Attach competition ranks (1, 2, 2, 4) to rows sorted by total score.

    Args:
        rows: iterable of (username, total_score, predictions, best_score)
    """
    leaderboard = []
    previous_score = None
    rank = 0
    for position, (username, total_score, predictions, best_score) in enumerate(
        rows, start=1
    ):
        total_score = int(total_score or 0)
        if total_score != previous_score:
            rank = position
            previous_score = total_score
        leaderboard.append(
            {
                "rank": rank,
                "username": username,
                "total_score": total_score,
                "predictions": int(predictions or 0),
                "best_score": int(best_score or 0),
            }
        )
    return leaderboard


class GameRepository:
    """Reads and writes Prediction and badge records through one session"""

    def __init__(self, session):
        self.session = session

    def rollback(self):
        self.session.rollback()

    # Predictions

    def unscored_predictions(self, storm_id, checkpoint):
        """Predictions for (storm_id, checkpoint) with no score yet, oldest first"""
        return (
            self.session.query(Prediction)
            .filter(
                Prediction.storm_id == storm_id,
                Prediction.checkpoint == checkpoint,
                Prediction.score.is_(None),
            )
            .order_by(Prediction.id)
            .all()
        )

    def mark_scored(self, prediction_id, actual, breakdown, scored_at=None):
        """
        Write the score and the actual values onto one prediction.

        The update only matches a row that is still unscored, so a second
        pass over the same checkpoint changes nothing.

        Args:
            prediction_id: primary key of the prediction
            actual: mapping with lat, lon, wind_speed, pressure
            breakdown: ScoreBreakdown from utils.scoring
            scored_at: timestamp to record (defaults to now)

        Returns:
            bool: True if this call scored the row
        """
        scored_at = scored_at or datetime.now(timezone.utc)
        rowcount = (
            self.session.query(Prediction)
            .filter(Prediction.id == prediction_id, Prediction.score.is_(None))
            .update(
                {
                    Prediction.score: breakdown.total,
                    Prediction.actual_lat: actual["lat"],
                    Prediction.actual_lon: actual["lon"],
                    Prediction.actual_wind_speed: actual["wind_speed"],
                    Prediction.actual_pressure: actual["pressure"],
                    Prediction.distance_error_nm: breakdown.distance_nm,
                    Prediction.track_score: breakdown.track_score,
                    Prediction.intensity_score: breakdown.intensity_score,
                    Prediction.scored_at: scored_at,
                },
                synchronize_session=False,
            )
        )
        self.session.commit()
        return rowcount == 1

    def user_stats(self, username):
        """Aggregate a user's scored predictions into a UserStats snapshot"""
        row = (
            self.session.query(
                func.count(Prediction.id),
                func.coalesce(func.sum(Prediction.score), 0),
                func.count(func.distinct(Prediction.storm_id)),
                func.avg(Prediction.score),
                func.max(Prediction.score),
            )
            .filter(Prediction.username == username, Prediction.score.isnot(None))
            .one()
        )
        total_predictions, total_score, unique_storms, average, best = row
        return UserStats(
            total_predictions=int(total_predictions or 0),
            total_score=int(total_score or 0),
            unique_storms=int(unique_storms or 0),
            average_score=round(float(average), 2) if average is not None else 0.0,
            best_score=int(best or 0),
        )

    def storm_leaderboard(self, storm_id, limit=None):
        """Users ranked by summed score for one storm (scored rows only)"""
        return self._leaderboard(Prediction.storm_id == storm_id, limit=limit)

    def global_leaderboard(self, limit=None):
        """Users ranked by summed score across every storm"""
        return self._leaderboard(limit=limit)

    def _leaderboard(self, *criteria, limit=None):
        total = func.sum(Prediction.score).label("total_score")
        query = (
            self.session.query(
                Prediction.username,
                total,
                func.count(Prediction.id),
                func.max(Prediction.score),
            )
            .filter(Prediction.score.isnot(None), *criteria)
            .group_by(Prediction.username)
            .order_by(total.desc(), Prediction.username)
        )
        if limit:
            query = query.limit(limit)
        return _rank_rows(query.all())

    # Badges

    def badge_definitions(self):
        return (
            self.session.query(BadgeDefinition)
            .order_by(BadgeDefinition.sort_order, BadgeDefinition.id)
            .all()
        )

    def has_badge(self, username, badge_id):
        return (
            self.session.query(UserBadge.id)
            .filter_by(username=username, badge_id=badge_id)
            .first()
            is not None
        )

    def earned_badge_ids(self, username):
        rows = self.session.query(UserBadge.badge_id).filter_by(username=username).all()
        return {badge_id for (badge_id,) in rows}

    def user_badges(self, username):
        return (
            self.session.query(UserBadge)
            .filter_by(username=username)
            .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
            .all()
        )

    def award_badge_if_absent(self, username, badge_id, metadata=None):
        """
        Insert a UserBadge unless the user already holds it.

        The unique (username, badge_id) constraint decides concurrent
        attempts: whoever loses the insert gets an IntegrityError, which is
        treated as "already awarded".

        Returns:
            bool: True if a new award was written
        """
        if self.has_badge(username, badge_id):
            return False

        self.session.add(
            UserBadge(username=username, badge_id=badge_id, badge_metadata=metadata or {})
        )
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.debug(f"Badge {badge_id} already awarded to {username}")
            return False

        return True

    # Health

    def counts(self):
        return {
            "predictions": self.session.query(func.count(Prediction.id)).scalar(),
            "scored_predictions": self.session.query(func.count(Prediction.id))
            .filter(Prediction.score.isnot(None))
            .scalar(),
            "users": self.session.query(
                func.count(func.distinct(Prediction.username))
            ).scalar(),
            "badges_awarded": self.session.query(func.count(UserBadge.id)).scalar(),
            "badge_definitions": self.session.query(
                func.count(BadgeDefinition.id)
            ).scalar(),
        }
