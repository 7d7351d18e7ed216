"""
Game endpoints: create, list, read and edit.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from opengym.db.session import get_db
from opengym.schemas.game import GameCreate, GameUpdate, GameResponse, GameListItem, GameListResponse
from opengym.schemas.user import UserResponse
from opengym.services.game_service import (
    clamp_paging,
    create_game,
    get_visible_game,
    list_games,
    update_game,
)
from opengym.services.cache_service import invalidate_public_game
from opengym.core.clock import get_clock
from opengym.core.config import get_settings
from opengym.core.security import get_current_user_id, get_optional_user_id

settings = get_settings()

router = APIRouter(prefix="/games", tags=["Games"])


@router.post("", response_model=GameResponse, status_code=status.HTTP_201_CREATED)
async def create_game_endpoint(
    game_data: GameCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    clock=Depends(get_clock),
):
    """Create a new game. The caller becomes its organizer."""
    return await create_game(db, game_data, user_id, clock.now())


@router.get("", response_model=GameListResponse)
async def list_games_endpoint(
    page: int = Query(1),
    page_size: int = Query(settings.GAMES_PAGE_SIZE_DEFAULT, alias="pageSize"),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Your games: the ones you organize and the ones you have answered.
    Pages start at 1; pageSize is clamped to 1..25.
    """
    page, page_size = clamp_paging(page, page_size)
    games, total = await list_games(db, user_id, page, page_size)
    return GameListResponse(
        items=[
            GameListItem(
                id=game.id,
                name=game.name,
                location=game.location,
                starts_at=game.starts_at,
                published_at=game.published_at,
                updated_at=game.updated_at,
                organizer=UserResponse.model_validate(game.organizer) if game.organizer else None,
                is_organizer=game.organizer_id == user_id,
            )
            for game in games
        ],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{game_id}", response_model=GameResponse)
async def get_game_endpoint(
    game_id: str,
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
    clock=Depends(get_clock),
):
    """Get a single game. Unpublished games are only visible to their organizer."""
    return await get_visible_game(db, game_id, user_id, clock.now())


@router.patch("/{game_id}", response_model=GameResponse)
async def update_game_endpoint(
    game_id: str,
    updates: GameUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    clock=Depends(get_clock),
):
    """
    Edit a game. Organizer only.
    Send null to clear a limit; omitted fields are left unchanged.
    """
    game = await update_game(db, game_id, user_id, updates, clock.now())
    await db.commit()
    await invalidate_public_game(game_id)
    return game
