from opengym.schemas.user import UserResponse
from opengym.schemas.game import (
    GameCreate, GameUpdate, GameResponse, GameListItem, GameListResponse, PublicGameResponse,
)
from opengym.schemas.participant import ParticipationUpdate, ParticipationResponse, ParticipantResponse

__all__ = [
    "UserResponse",
    "GameCreate", "GameUpdate", "GameResponse", "GameListItem", "GameListResponse", "PublicGameResponse",
    "ParticipationUpdate", "ParticipationResponse", "ParticipantResponse",
]
