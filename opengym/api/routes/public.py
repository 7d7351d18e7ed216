"""
Unauthenticated game teaser with Redis caching.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from opengym.db.session import get_db
from opengym.schemas.game import PublicGameResponse
from opengym.services.game_service import get_public_game
from opengym.services.cache_service import get_cached_public_game, set_cached_public_game
from opengym.core.clock import get_clock
from opengym.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/public/games", tags=["Public"])


@router.get("/{game_id}", response_model=PublicGameResponse)
async def get_public_game_endpoint(
    game_id: str,
    db: AsyncSession = Depends(get_db),
    clock=Depends(get_clock),
):
    """
    Name and organizer of a game for anyone holding the link.
    Published previews are cached in Redis and invalidated on every write
    to the game or its participants.
    """
    cached = await get_cached_public_game(game_id)
    if cached:
        logger.info("public_game_cache_hit", game_id=game_id)
        cached["cached"] = True
        return PublicGameResponse(**cached)

    preview = await get_public_game(db, game_id, clock.now())

    # Scheduled previews flip on their own at publish time
    if preview["published_at"] is None:
        await set_cached_public_game(game_id, preview)

    return PublicGameResponse(**preview)
