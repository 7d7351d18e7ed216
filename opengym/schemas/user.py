"""
Pydantic schemas for user profiles shown next to participations.
"""

from typing import Optional
from pydantic import BaseModel


class UserResponse(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None

    model_config = {"from_attributes": True}
