"""
Incremental maintenance of a game's cached spots_left counter.

spots_left is always equal to what a full admission pass would produce
(capacity minus the seats of every confirmed party). Keeping it current must
not require a rescan of every participant on the common path, so each write
picks one of two update rules:

Fast path (tail admission)
  A participant who was not Going joins. They land at the back of the
  priority order, so nobody already confirmed can be displaced. If their
  party fits in spots_left they are confirmed and the counter is
  decremented; otherwise they are waitlisted and the counter is unchanged.

Full recompute
  Anything that can reshuffle the confirmed set: the organizer joining
  (always inserted at position zero), a Going participant changing their
  party size, or a confirmed participant withdrawing (which may promote
  waitlisted parties). The tracker reruns the admission pass and rebuilds the
  counter from its result.

A tail join falls back to a full recompute when some Going claim already
carries a timestamp at or after the new one: ties are broken by user id, so
the newcomer may not sort last.

Withdrawals of waitlisted or already withdrawn participants need neither.

The tracker is pure. The caller loads claims (only when requires_rescan says
so), applies the returned TrackerResult, and persists it.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from opengym.services.admission import (
    AdmissionStatus,
    Claim,
    Classification,
    Intent,
    classify_game,
)
from opengym.core.clock import as_utc
from opengym.services.limits import Limit, Limited, UNLIMITED


class InvalidParticipation(ValueError):
    """Raised when a participation request breaks the game's limits."""


@dataclass(frozen=True)
class TrackerResult:
    claim: Claim
    status: AdmissionStatus
    spots_left: Optional[int]
    recompute_reason: Optional[str] = None

    @property
    def recomputed(self) -> bool:
        return self.recompute_reason is not None


class CapacityTracker:
    def __init__(
        self,
        capacity: Limit,
        organizer_id: int,
        spots_left: Optional[int],
        max_guests: Limit = UNLIMITED,
    ):
        self.capacity = capacity
        self.organizer_id = organizer_id
        self.spots_left = spots_left if isinstance(capacity, Limited) else None
        self.max_guests = max_guests

    @classmethod
    def for_game(cls, game) -> "CapacityTracker":
        return cls(
            capacity=game.capacity,
            organizer_id=game.organizer_id,
            spots_left=game.spots_left,
            max_guests=game.guest_limit,
        )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def requires_rescan(
        self,
        user_id: int,
        intent: Intent,
        previous: Optional[Claim],
        now: Optional[datetime] = None,
        latest_arrival: Optional[datetime] = None,
    ) -> bool:
        """Whether the caller must load every claim before applying `intent`."""
        was_going = previous is not None and previous.is_going
        if intent == Intent.GOING:
            return user_id == self.organizer_id or was_going or self._arrival_tie(now, latest_arrival)
        return was_going

    def validate_guests(self, user_id: int, guests: int) -> None:
        if guests < 0:
            raise InvalidParticipation("guests cannot be negative")
        if not self.max_guests.allows(guests):
            raise InvalidParticipation(
                f"guests cannot exceed {self.max_guests} for this game"
            )
        if user_id == self.organizer_id and not self.capacity.allows(1 + guests):
            raise InvalidParticipation(
                f"party of {1 + guests} does not fit in a game of {self.capacity} players"
            )

    def join(
        self,
        user_id: int,
        guests: int,
        now: datetime,
        previous: Optional[Claim] = None,
        claims: Optional[Sequence[Claim]] = None,
        latest_arrival: Optional[datetime] = None,
    ) -> TrackerResult:
        """
        Apply a Going claim with `guests` guests.
        `latest_arrival` is the newest timestamp among the other Going claims.
        """
        self.validate_guests(user_id, guests)

        was_going = previous is not None and previous.is_going
        # Queue position only moves when the intent itself changes.
        updated_at = previous.updated_at if was_going else now
        claim = Claim(user_id=user_id, intent=Intent.GOING, guests=guests, updated_at=updated_at)

        if user_id == self.organizer_id:
            return self._recompute(claim, claims, "organizer_join")
        if was_going:
            return self._recompute(claim, claims, "claim_update")
        if self._arrival_tie(now, latest_arrival):
            return self._recompute(claim, claims, "arrival_tie")

        if not isinstance(self.capacity, Limited):
            return TrackerResult(claim=claim, status=AdmissionStatus.CONFIRMED, spots_left=None)
        if self.spots_left is not None and self.spots_left >= claim.party_size:
            return TrackerResult(
                claim=claim,
                status=AdmissionStatus.CONFIRMED,
                spots_left=self.spots_left - claim.party_size,
            )
        return TrackerResult(claim=claim, status=AdmissionStatus.WAITLISTED, spots_left=self.spots_left)

    def leave(
        self,
        user_id: int,
        now: datetime,
        previous: Optional[Claim] = None,
        claims: Optional[Sequence[Claim]] = None,
    ) -> TrackerResult:
        """Apply a NotGoing claim."""
        was_going = previous is not None and previous.is_going
        updated_at = now if previous is None or previous.intent != Intent.NOT_GOING else previous.updated_at
        claim = Claim(user_id=user_id, intent=Intent.NOT_GOING, guests=0, updated_at=updated_at)

        if not was_going:
            return TrackerResult(claim=claim, status=AdmissionStatus.WITHDRAWN, spots_left=self.spots_left)

        before = self.classify(self._require(claims))
        if before.status_of(user_id) != AdmissionStatus.CONFIRMED:
            return TrackerResult(claim=claim, status=AdmissionStatus.WITHDRAWN, spots_left=self.spots_left)

        return self._recompute(claim, claims, "confirmed_withdrawal")

    # ------------------------------------------------------------------
    # Full passes
    # ------------------------------------------------------------------

    def classify(self, claims: Sequence[Claim]) -> Classification:
        return classify_game(self.capacity, claims, self.organizer_id)

    def reconcile(self, claims: Sequence[Claim]) -> Optional[int]:
        """spots_left rebuilt from scratch."""
        return self.classify(claims).spots_left

    def _recompute(self, claim: Claim, claims: Optional[Sequence[Claim]], reason: str) -> TrackerResult:
        merged = [c for c in self._require(claims) if c.user_id != claim.user_id]
        merged.append(claim)
        after = self.classify(merged)
        return TrackerResult(
            claim=claim,
            status=after.status_of(claim.user_id),
            spots_left=after.spots_left,
            recompute_reason=reason,
        )

    def _arrival_tie(self, now: Optional[datetime], latest_arrival: Optional[datetime]) -> bool:
        if not isinstance(self.capacity, Limited):
            return False
        return now is not None and latest_arrival is not None and as_utc(latest_arrival) >= as_utc(now)

    @staticmethod
    def _require(claims: Optional[Sequence[Claim]]) -> Sequence[Claim]:
        if claims is None:
            raise RuntimeError("full participant list required for this transition")
        return claims
