"""
Pydantic schemas for participation requests and listings.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

from opengym.services.admission import AdmissionStatus
from opengym.schemas.user import UserResponse


class ParticipationUpdate(BaseModel):
    status: Literal["going", "not_going"]
    guests: int = Field(default=0, ge=0)
    confirmed: Optional[bool] = None


class ParticipationResponse(BaseModel):
    game_id: str
    user_id: str
    status: AdmissionStatus


class ParticipantResponse(BaseModel):
    user: UserResponse
    status: AdmissionStatus
    guests: int
    created_at: datetime
    updated_at: datetime
    confirmed_at: Optional[datetime] = None
