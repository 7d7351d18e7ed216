"""
Participation of a user in a game.

Key design decisions:
- Composite primary key (game_id, user_id): one row per user per game,
  created on the first intent change and updated in place afterwards
- Status (confirmed / waitlisted) is not stored; it is derived from
  `intent`, `guests` and `intent_updated_at` by the admission engine
- `intent_updated_at` only moves when the intent changes, so editing the
  guest count keeps a participant's place in line
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from opengym.db.base import Base, TimestampMixin
from opengym.services.admission import Claim, Intent


class GameParticipant(Base, TimestampMixin):
    __tablename__ = "game_participants"

    game_id = Column(String(16), ForeignKey("games.id"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True, index=True)
    intent = Column(String(20), nullable=False, default=Intent.UNSET.value)
    guests = Column(Integer, nullable=False, default=0)
    intent_updated_at = Column(DateTime(timezone=True), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", lazy="joined")

    __table_args__ = (
        CheckConstraint("guests >= 0", name="check_participant_guests_non_negative"),
        CheckConstraint(
            "intent IN ('going', 'not_going', 'unset')",
            name="check_participant_intent",
        ),
        CheckConstraint(
            "intent != 'not_going' OR guests = 0",
            name="check_not_going_has_no_guests",
        ),
        # Admission order scan: all claims of a game by arrival
        Index("ix_game_participants_order", "game_id", "intent_updated_at", "user_id"),
    )

    def to_claim(self) -> Claim:
        return Claim(
            user_id=self.user_id,
            intent=Intent(self.intent),
            guests=self.guests,
            updated_at=self.intent_updated_at,
        )

    def __repr__(self) -> str:
        return f"<GameParticipant(game={self.game_id}, user={self.user_id}, intent={self.intent})>"
