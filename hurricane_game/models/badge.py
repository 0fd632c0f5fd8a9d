from datetime import datetime, timezone

from hurricane_game import db


class BadgeDefinition(db.Model):
    __tablename__ = "badge_definitions"

    id = db.Column(db.Integer, primary_key=True)
    badge_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(32), nullable=False)  # milestone/performance/special
    tier = db.Column(db.String(32), nullable=False)  # bronze ... diamond
    icon = db.Column(db.String(16))
    points_value = db.Column(db.Integer, default=0)
    sort_order = db.Column(db.Integer, default=0)

    __table_args__ = (db.Index("idx_badge_category", "category"),)

    def __repr__(self):
        return f"<BadgeDefinition {self.badge_id}>"

    def to_dict(self):
        return {
            "badge_id": self.badge_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "tier": self.tier,
            "icon": self.icon,
            "points_value": self.points_value,
        }


class UserBadge(db.Model):
    __tablename__ = "user_badges"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), nullable=False)
    badge_id = db.Column(
        db.String(64), db.ForeignKey("badge_definitions.badge_id"), nullable=False
    )
    earned_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    # "metadata" is reserved on declarative models
    badge_metadata = db.Column("metadata", db.JSON, default=dict)

    badge = db.relationship("BadgeDefinition", lazy="joined")

    # A badge is awarded at most once per user
    __table_args__ = (
        db.UniqueConstraint("username", "badge_id", name="unique_user_badge"),
        db.Index("idx_user_badge_username", "username"),
    )

    def __repr__(self):
        return f"<UserBadge {self.username} {self.badge_id}>"

    def to_dict(self):
        data = self.badge.to_dict() if self.badge else {"badge_id": self.badge_id}
        data.update(
            {
                "earned_at": self.earned_at.isoformat() if self.earned_at else None,
                "metadata": self.badge_metadata or {},
            }
        )
        return data
