"""
Game model with a cached spots_left counter.

Key design decisions:
- `id` is a short random alphanumeric string so links are easy to share
- `max_players`, `max_guests_per_player` and `max_waitlist_size` are NULL
  when unlimited; `capacity` and `guest_limit` expose the first two as
  Unlimited | Limited(n); the waitlist size is informational
- `spots_left` is denormalized (avoids a full admission pass per join) and is
  NULL exactly when capacity is unlimited
- `version` column enables optimistic locking for concurrent participation
  writes
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from opengym.core.clock import as_utc
from opengym.db.base import Base, TimestampMixin
from opengym.services.limits import Limit, limit_from_column


class Game(Base, TimestampMixin):
    __tablename__ = "games"

    id = Column(String(16), primary_key=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(1000), nullable=True)
    location = Column(String(255), nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=60)
    total_price_cents = Column(Integer, nullable=False, default=0)
    published_at = Column(DateTime(timezone=True), nullable=True)

    max_players = Column(Integer, nullable=True)
    max_guests_per_player = Column(Integer, nullable=True)
    max_waitlist_size = Column(Integer, nullable=True)
    spots_left = Column(Integer, nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    organizer = relationship("User", lazy="joined")

    __table_args__ = (
        CheckConstraint("max_players IS NULL OR max_players >= 0", name="check_max_players_non_negative"),
        CheckConstraint(
            "max_guests_per_player IS NULL OR max_guests_per_player >= 0",
            name="check_max_guests_non_negative",
        ),
        CheckConstraint(
            "max_waitlist_size IS NULL OR max_waitlist_size >= 0",
            name="check_max_waitlist_non_negative",
        ),
        CheckConstraint(
            "(max_players IS NULL AND spots_left IS NULL) OR "
            "(max_players IS NOT NULL AND spots_left IS NOT NULL "
            "AND spots_left >= 0 AND spots_left <= max_players)",
            name="check_spots_left_within_capacity",
        ),
        CheckConstraint("duration_minutes > 0", name="check_duration_positive"),
        CheckConstraint("total_price_cents >= 0", name="check_price_non_negative"),
        Index("ix_games_published_at", "published_at"),
    )

    @property
    def capacity(self) -> Limit:
        return limit_from_column(self.max_players)

    @property
    def guest_limit(self) -> Limit:
        return limit_from_column(self.max_guests_per_player)

    def is_published(self, now: datetime) -> bool:
        published_at = as_utc(self.published_at)
        return published_at is not None and published_at <= now

    def is_visible_to(self, user_id: Optional[int], now: datetime) -> bool:
        """Unpublished and scheduled games are only visible to their organizer."""
        return user_id == self.organizer_id or self.is_published(now)

    def __repr__(self) -> str:
        return f"<Game(id={self.id}, name={self.name}, spots_left={self.spots_left}/{self.max_players})>"
