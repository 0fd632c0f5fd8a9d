from hurricane_game import db  # noqa: F401 - imported for model imports

from .badge import BadgeDefinition, UserBadge
from .prediction import Prediction
from .stats import UserStats
from .storm import Checkpoint, StormSchedule

__all__ = [
    "Prediction",
    "BadgeDefinition",
    "UserBadge",
    "UserStats",
    "StormSchedule",
    "Checkpoint",
]
