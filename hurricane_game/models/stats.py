from dataclasses import asdict, dataclass, fields


@dataclass(frozen=True)
class UserStats:
    """Aggregate over a user's scored predictions (derived, never stored)"""

    total_predictions: int = 0
    total_score: int = 0
    unique_storms: int = 0
    average_score: float = 0.0
    best_score: int = 0

    @classmethod
    def from_mapping(cls, data):
        """Build from a plain mapping; unknown keys are ignored, missing ones default to 0"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self):
        return asdict(self)
