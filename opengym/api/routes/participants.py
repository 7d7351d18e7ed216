"""
Participation endpoints: set your own intent, list everyone's status.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from opengym.db.session import get_db
from opengym.schemas.participant import ParticipationUpdate, ParticipationResponse, ParticipantResponse
from opengym.schemas.user import UserResponse
from opengym.services.admission import Intent
from opengym.services.participation_service import set_participation, list_participation
from opengym.services.cache_service import invalidate_public_game
from opengym.core.clock import get_clock
from opengym.core.metrics import participation_latency
from opengym.core.security import get_current_user_id

router = APIRouter(prefix="/games/{game_id}/participants", tags=["Participants"])


@router.post("", response_model=ParticipationResponse)
async def set_participation_endpoint(
    game_id: str,
    body: ParticipationUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    clock=Depends(get_clock),
):
    """
    Join or leave a game.

    Joining confirms you straight away when your whole party fits in the
    remaining spots, otherwise you are waitlisted. Leaving may promote
    waitlisted players. Concurrent writes to the same game are retried a few
    times before returning 409.
    """
    with participation_latency.time():
        standing = await set_participation(
            db,
            game_id,
            user_id,
            Intent(body.status),
            clock.now(),
            guests=body.guests if body.status == Intent.GOING.value else 0,
            confirmed=body.confirmed,
        )
    # Invalidate only once the new spots_left is committed
    await db.commit()
    await invalidate_public_game(game_id)
    return ParticipationResponse(
        game_id=game_id,
        user_id=str(user_id),
        status=standing.status,
    )


@router.get("", response_model=list[ParticipantResponse])
async def list_participation_endpoint(
    game_id: str,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    clock=Depends(get_clock),
):
    """All participants in admission order. Statuses are computed per request."""
    standings = await list_participation(db, game_id, user_id, clock.now())
    return [
        ParticipantResponse(
            user=UserResponse.model_validate(s.participant.user),
            status=s.status,
            guests=s.participant.guests,
            created_at=s.participant.created_at,
            updated_at=s.participant.intent_updated_at,
            confirmed_at=s.participant.confirmed_at,
        )
        for s in standings
    ]
