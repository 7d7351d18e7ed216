"""
Participation service: joining, leaving and listing a game's players.

CONCURRENCY STRATEGY: Optimistic Locking on the Game Row
========================================================

Problem:
  Two players ask for the last spot at the same time. Both read
  spots_left=1, both take the fast path, both end up confirmed.
  Result: the game is overbooked and spots_left no longer matches the
  admission pass.

Solution:
  Every participation write goes through the game row's `version` column.

  1. Read the game (and, when the transition needs it, every claim)
  2. Let the CapacityTracker decide the new status and spots_left
  3. UPDATE games SET spots_left = :new, version = version + 1
     WHERE id = :game_id AND version = :read_version
  4. If rows_affected == 0, another write landed in between: roll back,
     reload and decide again

  The participant row is only written after the version check succeeds, so
  a lost race never leaves a half-applied claim behind. The version is
  bumped on every write, including withdrawals that leave spots_left alone,
  because any claim change can alter a concurrent recompute.

Status is never persisted. The read path reruns the admission pass over the
current rows, which is also how reconcile_spots_left audits the counter.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from opengym.core.config import get_settings
from opengym.core.logging import get_logger
from opengym.core.metrics import (
    record_conflict,
    record_participation,
    record_recompute,
    spots_left_drift,
)
from opengym.models.game import Game
from opengym.models.participant import GameParticipant
from opengym.services.admission import AdmissionStatus, Intent, classify_game
from opengym.services.capacity_tracker import CapacityTracker, InvalidParticipation, TrackerResult
from opengym.services.game_service import (
    get_visible_game,
    latest_going_arrival,
    load_claims,
    load_game,
)

logger = get_logger(__name__)
settings = get_settings()


@dataclass
class ParticipantStanding:
    """A participant row together with its derived admission status."""

    participant: GameParticipant
    status: AdmissionStatus


def _apply_claim(
    db: AsyncSession,
    participant: Optional[GameParticipant],
    game_id: str,
    result: TrackerResult,
    confirmed: Optional[bool],
    now: datetime,
) -> GameParticipant:
    claim = result.claim
    if participant is None:
        participant = GameParticipant(game_id=game_id, user_id=claim.user_id)
        db.add(participant)

    participant.intent = claim.intent.value
    participant.guests = claim.guests
    participant.intent_updated_at = claim.updated_at

    if confirmed is True and participant.confirmed_at is None:
        participant.confirmed_at = now
    elif confirmed is False:
        participant.confirmed_at = None
    return participant


async def set_participation(
    db: AsyncSession,
    game_id: str,
    user_id: int,
    intent: Intent,
    now: datetime,
    guests: int = 0,
    confirmed: Optional[bool] = None,
) -> ParticipantStanding:
    """
    Record a player's intent for a game and return their resulting status.
    Retries up to PARTICIPATION_MAX_RETRIES on version conflicts.
    """
    max_attempts = settings.PARTICIPATION_MAX_RETRIES

    for attempt in range(1, max_attempts + 1):
        # Step 1: Read current game state (fresh after a rollback)
        game = await get_visible_game(db, game_id, user_id, now, fresh=attempt > 1)
        current_version = game.version
        current_spots = game.spots_left
        tracker = CapacityTracker.for_game(game)

        participant = await db.get(GameParticipant, (game_id, user_id))
        previous = participant.to_claim() if participant else None

        latest_arrival = None
        if intent == Intent.GOING and not (previous and previous.is_going):
            latest_arrival = await latest_going_arrival(db, game_id, user_id)

        claims = None
        if tracker.requires_rescan(user_id, intent, previous, now, latest_arrival):
            claims = await load_claims(db, game_id)

        # Step 2: Decide
        try:
            if intent == Intent.GOING:
                result = tracker.join(
                    user_id, guests, now, previous=previous, claims=claims, latest_arrival=latest_arrival
                )
            else:
                result = tracker.leave(user_id, now, previous=previous, claims=claims)
        except InvalidParticipation as e:
            logger.warning(
                "participation_rejected",
                game_id=game_id,
                user_id=user_id,
                guests=guests,
                reason=str(e),
            )
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e),
            )

        # Step 3: Optimistic lock - write the counter only if nobody else did
        values = {"version": Game.version + 1}
        if result.spots_left != current_spots:
            values["spots_left"] = result.spots_left
        update_result = await db.execute(
            update(Game)
            .where(Game.id == game_id, Game.version == current_version)
            .values(**values)
        )

        if update_result.rowcount == 0:
            exhausted = attempt == max_attempts
            record_conflict(exhausted)
            logger.info(
                "participation_retry",
                game_id=game_id,
                user_id=user_id,
                attempt=attempt,
                reason="version_conflict",
            )
            await db.rollback()
            if exhausted:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Participation update failed due to high demand. Please try again.",
                )
            continue

        if result.recomputed:
            record_recompute(result.recompute_reason)
            logger.info(
                "capacity_recomputed",
                game_id=game_id,
                reason=result.recompute_reason,
                spots_left_before=current_spots,
                spots_left=result.spots_left,
            )

        # Step 4: Persist the claim
        participant = _apply_claim(db, participant, game_id, result, confirmed, now)
        await db.flush()
        await db.refresh(participant)

        record_participation(intent.value, result.status.value)
        logger.info(
            "participation_updated",
            game_id=game_id,
            user_id=user_id,
            intent=intent.value,
            guests=result.claim.guests,
            status=result.status.value,
            spots_left=result.spots_left,
            attempt=attempt,
        )
        return ParticipantStanding(participant=participant, status=result.status)

    # Should not reach here, but just in case
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Participation update failed unexpectedly",
    )


async def list_participation(
    db: AsyncSession,
    game_id: str,
    user_id: Optional[int],
    now: datetime,
) -> List[ParticipantStanding]:
    """
    Every participant of a visible game in admission order, with status.
    Read-only: one admission pass, no writes.
    """
    game = await get_visible_game(db, game_id, user_id, now)

    result = await db.execute(
        select(GameParticipant).where(GameParticipant.game_id == game_id)
    )
    participants = {p.user_id: p for p in result.scalars().all()}

    classification = classify_game(
        game.capacity,
        [p.to_claim() for p in participants.values()],
        game.organizer_id,
    )
    return [
        ParticipantStanding(participant=participants[uid], status=classification.status_of(uid))
        for uid in classification.order
    ]


async def reconcile_spots_left(db: AsyncSession, game_id: str) -> Optional[int]:
    """
    Rebuild a game's spots_left from a full admission pass.
    Logs and repairs any drift; returns the correct value.
    """
    game = await load_game(db, game_id, fresh=True)
    if not game:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Game {game_id} not found",
        )

    tracker = CapacityTracker.for_game(game)
    expected = tracker.reconcile(await load_claims(db, game_id))
    record_recompute("reconcile")

    if expected == game.spots_left:
        return expected

    spots_left_drift.inc()
    logger.warning(
        "spots_left_drift",
        game_id=game_id,
        cached=game.spots_left,
        expected=expected,
    )
    await db.execute(
        update(Game)
        .where(Game.id == game_id)
        .values(spots_left=expected, version=Game.version + 1)
    )
    await db.flush()
    return expected
