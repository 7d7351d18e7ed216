from opengym.models.user import User
from opengym.models.game import Game
from opengym.models.participant import GameParticipant

__all__ = ["User", "Game", "GameParticipant"]
