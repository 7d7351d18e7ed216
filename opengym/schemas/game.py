"""
Pydantic schemas for game-related request/response validation.

Limits (max_players, max_guests_per_player, max_waitlist_size) accept
null to mean unlimited. On PATCH, an omitted field is left untouched while an
explicit null clears the limit (or, for published_at, unschedules the game).
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from opengym.schemas.user import UserResponse


class GameCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=255)
    starts_at: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    total_price_cents: int = Field(0, ge=0)
    max_players: Optional[int] = Field(None, ge=0)
    max_guests_per_player: Optional[int] = Field(0, ge=0)
    max_waitlist_size: Optional[int] = Field(None, ge=0)
    published_at: Optional[datetime] = None


class GameUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=255)
    starts_at: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    total_price_cents: Optional[int] = Field(None, ge=0)
    max_players: Optional[int] = Field(None, ge=0)
    max_guests_per_player: Optional[int] = Field(None, ge=0)
    max_waitlist_size: Optional[int] = Field(None, ge=0)
    published_at: Optional[datetime] = None

    @field_validator("name", "duration_minutes", "total_price_cents")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("cannot be null")
        return v


class GameResponse(BaseModel):
    id: str
    organizer_id: int
    organizer: Optional[UserResponse] = None
    name: str
    description: Optional[str]
    location: Optional[str]
    starts_at: Optional[datetime]
    duration_minutes: int
    total_price_cents: int
    max_players: Optional[int]
    max_guests_per_player: Optional[int]
    max_waitlist_size: Optional[int]
    spots_left: Optional[int]
    published_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PublicOrganizer(BaseModel):
    name: Optional[str] = None
    picture: Optional[str] = None


class PublicGameResponse(BaseModel):
    """Teaser shown to anyone holding the link, signed in or not."""

    id: str
    name: str
    organizer: PublicOrganizer
    spots_left: Optional[int] = None
    starts_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    cached: bool = False


class GameListItem(BaseModel):
    id: str
    name: str
    location: Optional[str] = None
    starts_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    updated_at: datetime
    organizer: Optional[UserResponse] = None
    is_organizer: bool


class GameListResponse(BaseModel):
    items: list[GameListItem]
    total: int
    page: int
    page_size: int
