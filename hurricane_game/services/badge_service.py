"""
Badge evaluation

Badges are described by a declarative rule table evaluated in one pass over a
UserStats snapshot (plus the score of the prediction that was just scored).
Awards go through the repository's insert-if-absent, so evaluating the same
user twice never duplicates a badge.
"""

import logging
import operator
from collections.abc import Mapping
from dataclasses import dataclass

from hurricane_game.models import BadgeDefinition, UserStats

logger = logging.getLogger(__name__)

METRIC_TOTAL_PREDICTIONS = "total_predictions"
METRIC_TOTAL_SCORE = "total_score"
METRIC_UNIQUE_STORMS = "unique_storms"
METRIC_CURRENT_SCORE = "current_score"


def _ends_with(value, suffix):
    return str(int(value)).endswith(suffix)


OPERATORS = {
    "eq": operator.eq,
    "gte": operator.ge,
    "endswith": _ends_with,
}


@dataclass(frozen=True)
class BadgeRule:
    badge_id: str
    category: str
    metric: str
    op: str
    target: object

    def matches(self, stats, current_score=None):
        if self.metric == METRIC_CURRENT_SCORE:
            value = current_score
        else:
            value = getattr(stats, self.metric)

        if value is None:
            return False
        return OPERATORS[self.op](value, self.target)


# Prediction counts are exact crossings (==); cumulative points use >= because
# one scoring pass can jump past a threshold.
BADGE_RULES = (
    BadgeRule("first_prediction", "milestone", METRIC_TOTAL_PREDICTIONS, "eq", 1),
    BadgeRule("veteran_10", "milestone", METRIC_TOTAL_PREDICTIONS, "eq", 10),
    BadgeRule("veteran_50", "milestone", METRIC_TOTAL_PREDICTIONS, "eq", 50),
    BadgeRule("veteran_100", "milestone", METRIC_TOTAL_PREDICTIONS, "eq", 100),
    BadgeRule("veteran_500", "milestone", METRIC_TOTAL_PREDICTIONS, "eq", 500),
    BadgeRule("points_5k", "milestone", METRIC_TOTAL_SCORE, "gte", 5000),
    BadgeRule("points_25k", "milestone", METRIC_TOTAL_SCORE, "gte", 25000),
    BadgeRule("points_50k", "milestone", METRIC_TOTAL_SCORE, "gte", 50000),
    BadgeRule("points_100k", "milestone", METRIC_TOTAL_SCORE, "gte", 100000),
    BadgeRule("storm_survivor_5", "milestone", METRIC_UNIQUE_STORMS, "eq", 5),
    BadgeRule("storm_survivor_12", "milestone", METRIC_UNIQUE_STORMS, "eq", 12),
    BadgeRule("diamond_prediction", "performance", METRIC_CURRENT_SCORE, "gte", 1900),
    BadgeRule("oracle", "performance", METRIC_CURRENT_SCORE, "gte", 1950),
    BadgeRule("perfect_storm", "performance", METRIC_CURRENT_SCORE, "eq", 2000),
    BadgeRule("lucky_number", "special", METRIC_CURRENT_SCORE, "endswith", "777"),
)

RULES_BY_ID = {rule.badge_id: rule for rule in BADGE_RULES}

# Static catalog seeded into badge_definitions
BADGE_CATALOG = (
    {
        "badge_id": "first_prediction",
        "name": "First Steps",
        "description": "Submit your first prediction",
        "category": "milestone",
        "tier": "bronze",
        "icon": "👶",
        "points_value": 50,
    },
    {
        "badge_id": "veteran_10",
        "name": "Veteran",
        "description": "Submit 10 predictions",
        "category": "milestone",
        "tier": "bronze",
        "icon": "🎖️",
        "points_value": 100,
    },
    {
        "badge_id": "veteran_50",
        "name": "Seasoned Forecaster",
        "description": "Submit 50 predictions",
        "category": "milestone",
        "tier": "silver",
        "icon": "🎖️",
        "points_value": 250,
    },
    {
        "badge_id": "veteran_100",
        "name": "Storm Veteran",
        "description": "Submit 100 predictions",
        "category": "milestone",
        "tier": "gold",
        "icon": "🎖️",
        "points_value": 500,
    },
    {
        "badge_id": "veteran_500",
        "name": "Hurricane Hunter",
        "description": "Submit 500 predictions",
        "category": "milestone",
        "tier": "platinum",
        "icon": "✈️",
        "points_value": 2500,
    },
    {
        "badge_id": "points_5k",
        "name": "Rising Star",
        "description": "Earn 5,000 total points",
        "category": "milestone",
        "tier": "bronze",
        "icon": "⭐",
        "points_value": 100,
    },
    {
        "badge_id": "points_25k",
        "name": "Point Collector",
        "description": "Earn 25,000 total points",
        "category": "milestone",
        "tier": "silver",
        "icon": "🌟",
        "points_value": 250,
    },
    {
        "badge_id": "points_50k",
        "name": "High Scorer",
        "description": "Earn 50,000 total points",
        "category": "milestone",
        "tier": "gold",
        "icon": "💫",
        "points_value": 500,
    },
    {
        "badge_id": "points_100k",
        "name": "Legend",
        "description": "Earn 100,000 total points",
        "category": "milestone",
        "tier": "platinum",
        "icon": "🏆",
        "points_value": 1000,
    },
    {
        "badge_id": "storm_survivor_5",
        "name": "Storm Survivor",
        "description": "Forecast 5 different storms",
        "category": "milestone",
        "tier": "silver",
        "icon": "🌀",
        "points_value": 250,
    },
    {
        "badge_id": "storm_survivor_12",
        "name": "Storm Chaser",
        "description": "Forecast 12 different storms",
        "category": "milestone",
        "tier": "gold",
        "icon": "🌪️",
        "points_value": 750,
    },
    {
        "badge_id": "diamond_prediction",
        "name": "Diamond Prediction",
        "description": "Score 1900+ points on a single prediction",
        "category": "performance",
        "tier": "diamond",
        "icon": "💎",
        "points_value": 1000,
    },
    {
        "badge_id": "oracle",
        "name": "Oracle",
        "description": "Score 1950+ points on a single prediction",
        "category": "performance",
        "tier": "diamond",
        "icon": "🔮",
        "points_value": 2000,
    },
    {
        "badge_id": "perfect_storm",
        "name": "Perfect Storm",
        "description": "Score exactly 2000 points",
        "category": "performance",
        "tier": "diamond",
        "icon": "⭐",
        "points_value": 5000,
    },
    {
        "badge_id": "lucky_number",
        "name": "Lucky Number",
        "description": "Score a prediction ending in 777",
        "category": "special",
        "tier": "gold",
        "icon": "🎰",
        "points_value": 777,
    },
)


def _as_stats(stats):
    if isinstance(stats, UserStats):
        return stats
    if isinstance(stats, Mapping):
        return UserStats.from_mapping(stats)
    raise TypeError(f"Expected UserStats or a mapping, got {type(stats).__name__}")


def should_award_badge(stats, badge_id, current_score=None):
    """
    Check a single badge condition.

    Args:
        stats: UserStats or a mapping (missing keys count as 0)
        badge_id: badge to check; unknown ids are never eligible
        current_score: score of the prediction just scored, if any

    Returns:
        bool
    """
    rule = RULES_BY_ID.get(badge_id)
    if rule is None:
        return False
    return rule.matches(_as_stats(stats), current_score)


def qualifying_badges(stats, current_score=None):
    """Every badge id whose rule holds for this snapshot, in rule order"""
    stats = _as_stats(stats)
    return [rule.badge_id for rule in BADGE_RULES if rule.matches(stats, current_score)]


def badge_progress(stats, earned_ids, definitions=None):
    """
    Progress toward every badge.

    Performance badges report the user's best single score against the
    target; lucky_number is all-or-nothing.

    Args:
        stats: UserStats snapshot
        earned_ids: set of badge ids the user already holds
        definitions: BadgeDefinition rows (defaults to BADGE_CATALOG)

    Returns:
        list of dicts ordered like the definitions
    """
    stats = _as_stats(stats)
    if definitions is None:
        definitions = [dict(entry) for entry in BADGE_CATALOG]
    else:
        definitions = [d.to_dict() if hasattr(d, "to_dict") else dict(d) for d in definitions]

    progress = []
    for definition in definitions:
        rule = RULES_BY_ID.get(definition["badge_id"])
        earned = definition["badge_id"] in earned_ids
        entry = dict(definition, earned=earned, value=None, target=None, progress=None)

        if rule is not None:
            if rule.metric == METRIC_CURRENT_SCORE:
                value = stats.best_score
            else:
                value = getattr(stats, rule.metric)

            if rule.op == "endswith":
                fraction = 1.0 if earned else 0.0
                entry.update(value=None, target=rule.target)
            else:
                fraction = min(1.0, value / rule.target) if rule.target else 1.0
                entry.update(value=value, target=rule.target)

            entry["progress"] = 1.0 if earned else round(fraction, 4)

        progress.append(entry)

    return progress


def seed_badge_definitions(session):
    """
    Insert catalog entries that are missing from badge_definitions.

    Existing rows are left untouched.

    Returns:
        int: number of definitions inserted
    """
    existing = {
        badge_id for (badge_id,) in session.query(BadgeDefinition.badge_id).all()
    }

    inserted = 0
    for sort_order, entry in enumerate(BADGE_CATALOG):
        if entry["badge_id"] in existing:
            continue
        session.add(BadgeDefinition(sort_order=sort_order, **entry))
        inserted += 1

    if inserted:
        session.commit()
        logger.info(f"Seeded {inserted} badge definitions")

    return inserted


class BadgeEvaluator:
    """Awards badges for one user after a prediction has been scored"""

    def __init__(self, repository):
        self.repository = repository

    def evaluate(self, username, prediction=None):
        """
        Recompute the user's stats and award every newly qualifying badge.

        Args:
            username: user to evaluate
            prediction: the freshly scored Prediction, if any

        Returns:
            list of badge ids awarded by this call
        """
        stats = self.repository.user_stats(username)
        current_score = prediction.score if prediction is not None else None

        awarded = []
        for badge_id in qualifying_badges(stats, current_score):
            metadata = {
                "total_predictions": stats.total_predictions,
                "total_score": stats.total_score,
                "unique_storms": stats.unique_storms,
            }
            if prediction is not None:
                metadata.update(
                    {
                        "storm_id": prediction.storm_id,
                        "checkpoint": prediction.checkpoint,
                        "score": prediction.score,
                    }
                )

            if self.repository.award_badge_if_absent(username, badge_id, metadata):
                logger.info(f"Awarded badge {badge_id} to {username}")
                awarded.append(badge_id)

        return awarded
