from typing import List

from pydantic import BaseModel, Field, field_validator

from chat_sync.models.conversation import PeerInfo
from chat_sync.schemas import strip_markup


class GroupCreate(BaseModel):
    """Schema for creating a group conversation."""
    name: str = Field(..., min_length=1, max_length=100)
    members: List[PeerInfo] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def sanitize_name(cls, v: str) -> str:
        v = strip_markup(v)
        if not v:
            raise ValueError("Group name cannot be blank")
        return v
