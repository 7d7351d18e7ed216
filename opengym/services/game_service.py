"""
Game service handling CRUD operations and visibility rules.
"""

import secrets
import string
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from opengym.core.clock import as_utc
from opengym.core.config import get_settings
from opengym.core.logging import get_logger
from opengym.core.metrics import record_recompute
from opengym.models.game import Game
from opengym.models.participant import GameParticipant
from opengym.schemas.game import GameCreate, GameUpdate
from opengym.services.admission import Intent
from opengym.services.capacity_tracker import CapacityTracker
from opengym.services.limits import limit_from_column

logger = get_logger(__name__)
settings = get_settings()

_ID_ALPHABET = string.ascii_letters + string.digits


def generate_game_id(length: Optional[int] = None) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length or settings.GAME_ID_LENGTH))


def _clamp_publish(published_at: Optional[datetime], now: datetime) -> Optional[datetime]:
    """Publishing in the past means publishing now."""
    published_at = as_utc(published_at)
    if published_at is not None and published_at < now:
        return now
    return published_at


async def load_game(db: AsyncSession, game_id: str, fresh: bool = False) -> Optional[Game]:
    """Load a game with its organizer. `fresh` overwrites any copy already in the session."""
    query = select(Game).where(Game.id == game_id)
    if fresh:
        query = query.execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_visible_game(
    db: AsyncSession,
    game_id: str,
    user_id: Optional[int],
    now: datetime,
    fresh: bool = False,
) -> Game:
    """
    Get a game the caller is allowed to see.
    Hidden games answer exactly like missing ones.
    """
    game = await load_game(db, game_id, fresh=fresh)
    if not game or not game.is_visible_to(user_id, now):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Game {game_id} not found",
        )
    return game


async def load_claims(db: AsyncSession, game_id: str):
    """Every participant claim of a game, in storage order."""
    result = await db.execute(
        select(GameParticipant)
        .where(GameParticipant.game_id == game_id)
        .order_by(GameParticipant.intent_updated_at.asc(), GameParticipant.user_id.asc())
    )
    return [participant.to_claim() for participant in result.scalars().all()]


async def latest_going_arrival(db: AsyncSession, game_id: str, exclude_user_id: int) -> Optional[datetime]:
    """Newest intent timestamp among the other Going participants of a game."""
    result = await db.execute(
        select(func.max(GameParticipant.intent_updated_at)).where(
            GameParticipant.game_id == game_id,
            GameParticipant.intent == Intent.GOING.value,
            GameParticipant.user_id != exclude_user_id,
        )
    )
    return result.scalar_one_or_none()


def clamp_paging(page: int, page_size: int) -> tuple[int, int]:
    return max(page, 1), min(max(page_size, 1), settings.GAMES_PAGE_SIZE_MAX)


async def list_games(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[Game], int]:
    """
    Games the user organizes or has answered, most recently updated first.
    Out-of-range paging values are clamped rather than rejected.
    """
    page, page_size = clamp_paging(page, page_size)

    joined = select(GameParticipant.game_id).where(GameParticipant.user_id == user_id)
    query = select(Game).where(or_(Game.organizer_id == user_id, Game.id.in_(joined)))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    games_query = (
        query
        .order_by(Game.updated_at.desc(), Game.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(games_query)
    games = list(result.scalars().all())

    return games, total


async def create_game(
    db: AsyncSession,
    game_data: GameCreate,
    organizer_id: int,
    now: datetime,
) -> Game:
    """
    Create a game owned by `organizer_id`.

    An omitted max_players falls back to DEFAULT_MAX_PLAYERS; an explicit null
    makes the game unlimited. All seats start free.
    """
    if "max_players" in game_data.model_fields_set:
        max_players = game_data.max_players
    else:
        max_players = settings.DEFAULT_MAX_PLAYERS

    for attempt in range(1, settings.GAME_ID_MAX_ATTEMPTS + 1):
        game_id = generate_game_id()
        if await db.get(Game, game_id) is None:
            break
        logger.warning("game_id_collision", game_id=game_id, attempt=attempt)
    else:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not allocate a game id",
        )

    game = Game(
        id=game_id,
        organizer_id=organizer_id,
        name=game_data.name,
        description=game_data.description,
        location=game_data.location,
        starts_at=game_data.starts_at,
        duration_minutes=game_data.duration_minutes or settings.DEFAULT_DURATION_MINUTES,
        total_price_cents=game_data.total_price_cents,
        published_at=_clamp_publish(game_data.published_at, now),
        max_players=max_players,
        max_guests_per_player=game_data.max_guests_per_player,
        max_waitlist_size=game_data.max_waitlist_size,
        spots_left=max_players,
    )
    db.add(game)
    await db.flush()

    logger.info(
        "game_created",
        game_id=game_id,
        organizer_id=organizer_id,
        max_players=max_players,
        published=game.is_published(now),
    )
    return await load_game(db, game_id, fresh=True)


async def update_game(
    db: AsyncSession,
    game_id: str,
    user_id: int,
    updates: GameUpdate,
    now: datetime,
) -> Game:
    """
    Apply an organizer's edits.

    A published game cannot be unpublished or rescheduled. Changing
    max_players rebuilds spots_left with a full admission pass, since a
    bigger game promotes waitlisted parties and a smaller one bumps the most
    recent confirmed ones.
    """
    game = await get_visible_game(db, game_id, user_id, now)
    if game.organizer_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the organizer can edit this game",
        )

    values = updates.model_dump(exclude_unset=True)

    if "published_at" in values:
        requested = as_utc(values["published_at"])
        if game.is_published(now):
            if requested != as_utc(game.published_at):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="A published game cannot be unpublished or rescheduled",
                )
            del values["published_at"]
        else:
            values["published_at"] = _clamp_publish(requested, now)

    if "max_players" in values and values["max_players"] != game.max_players:
        capacity = limit_from_column(values["max_players"])
        tracker = CapacityTracker(
            capacity=capacity,
            organizer_id=game.organizer_id,
            spots_left=None,
            max_guests=limit_from_column(values.get("max_guests_per_player", game.max_guests_per_player)),
        )
        claims = await load_claims(db, game_id)
        organizer = next((c for c in claims if c.user_id == game.organizer_id and c.is_going), None)
        if organizer is not None and not capacity.allows(organizer.party_size):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"max_players cannot be below the organizer's party of {organizer.party_size}",
            )
        values["spots_left"] = tracker.reconcile(claims)
        record_recompute("capacity_change")
        logger.info(
            "capacity_recomputed",
            game_id=game_id,
            reason="capacity_change",
            max_players=values["max_players"],
            spots_left=values["spots_left"],
        )

    if not values:
        return game

    current_version = game.version
    result = await db.execute(
        update(Game)
        .where(Game.id == game_id, Game.version == current_version)
        .values(**values, version=Game.version + 1)
    )
    if result.rowcount == 0:
        logger.info("game_update_conflict", game_id=game_id, version=current_version)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Game was modified concurrently. Please try again.",
        )

    logger.info("game_updated", game_id=game_id, fields=sorted(values))
    return await load_game(db, game_id, fresh=True)


async def get_public_game(db: AsyncSession, game_id: str, now: datetime) -> dict:
    """
    Teaser for anyone holding the link.
    Spots left and start time are only revealed once the game is published;
    a scheduled game shows when it will be.
    """
    game = await load_game(db, game_id)
    if not game:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Game {game_id} not found",
        )

    organizer = game.organizer
    preview = {
        "id": game.id,
        "name": game.name,
        "organizer": {
            "name": organizer.name if organizer else None,
            "picture": organizer.picture if organizer else None,
        },
        "spots_left": None,
        "starts_at": None,
        "published_at": None,
    }
    if game.is_published(now):
        preview["spots_left"] = game.spots_left
        preview["starts_at"] = as_utc(game.starts_at)
    elif game.published_at is not None:
        preview["published_at"] = as_utc(game.published_at)
    return preview
