"""
Admission engine: who is confirmed, who is waitlisted.

Status is never stored. It is derived on demand from the participant rows by
a single forward pass over the priority ordering:

  1. The organizer's claim, if Going, goes first.
  2. Everyone else follows by the time they last changed intent, earliest
     first, with the user id breaking ties.

Walking that order, each Going claim is confirmed if its whole party
(self + guests) still fits under the capacity, otherwise it is waitlisted.
A waitlisted party does not block smaller parties behind it. NotGoing and
Unset claims are withdrawn and take no seats.

Everything in this module is pure: same claims in, same classification out.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from opengym.core.clock import as_utc
from opengym.services.limits import Limit, Limited


class Intent(str, Enum):
    GOING = "going"
    NOT_GOING = "not_going"
    UNSET = "unset"


class AdmissionStatus(str, Enum):
    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"
    WITHDRAWN = "withdrawn"


@dataclass(frozen=True)
class Claim:
    """One participant's stated intent, as the engine sees it."""

    user_id: int
    intent: Intent
    guests: int = 0
    updated_at: Optional[datetime] = None

    @property
    def party_size(self) -> int:
        return 1 + self.guests

    @property
    def is_going(self) -> bool:
        return self.intent == Intent.GOING


@dataclass(frozen=True)
class Classification:
    order: List[int]
    statuses: Dict[int, AdmissionStatus]
    confirmed_total: int
    capacity: Limit

    def status_of(self, user_id: int) -> AdmissionStatus:
        return self.statuses.get(user_id, AdmissionStatus.WITHDRAWN)

    @property
    def spots_left(self) -> Optional[int]:
        """Free confirmed seats, or None when the capacity is unlimited."""
        if isinstance(self.capacity, Limited):
            return self.capacity.n - self.confirmed_total
        return None

    def users_with(self, status: AdmissionStatus) -> List[int]:
        return [user_id for user_id in self.order if self.statuses[user_id] == status]


_EPOCH_KEY = (0, 0.0)


def _arrival_key(claim: Claim):
    updated_at = as_utc(claim.updated_at)
    if updated_at is None:
        return (_EPOCH_KEY, claim.user_id)
    return ((1, updated_at.timestamp()), claim.user_id)


def priority_order(claims: Iterable[Claim], organizer_id: Optional[int]) -> List[Claim]:
    """Order claims for the admission pass: Going organizer first, then by arrival."""
    ordered = sorted(claims, key=_arrival_key)
    for index, claim in enumerate(ordered):
        if claim.user_id == organizer_id and claim.is_going:
            if index:
                ordered.insert(0, ordered.pop(index))
            break
    return ordered


def classify(capacity: Limit, ordered_claims: Sequence[Claim]) -> Classification:
    """Classify claims already in priority order."""
    running = 0
    statuses: Dict[int, AdmissionStatus] = {}
    order: List[int] = []

    for claim in ordered_claims:
        order.append(claim.user_id)
        if not claim.is_going:
            statuses[claim.user_id] = AdmissionStatus.WITHDRAWN
            continue

        if capacity.allows(running + claim.party_size):
            statuses[claim.user_id] = AdmissionStatus.CONFIRMED
            running += claim.party_size
        else:
            statuses[claim.user_id] = AdmissionStatus.WAITLISTED

    return Classification(
        order=order,
        statuses=statuses,
        confirmed_total=running,
        capacity=capacity,
    )


def classify_game(
    capacity: Limit,
    claims: Iterable[Claim],
    organizer_id: Optional[int],
) -> Classification:
    return classify(capacity, priority_order(claims, organizer_id))
