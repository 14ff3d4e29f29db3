from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Identity(BaseModel):
    """Signed-in identity as supplied by the authentication provider."""
    id: str
    display_name: str = Field(default="", alias="displayName")
    photo_url: Optional[str] = Field(default=None, alias="photoURL")
    email: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class UserProfile(BaseModel):
    """
    Document stored at users/{id}.

    Created on first sign-in and mutated by presence writes and profile
    edits; the client never deletes it. displayNameLower is the projection
    used for prefix search and always equals displayName.lower().
    """
    id: str
    display_name: str = Field(default="", alias="displayName")
    display_name_lower: str = Field(default="", alias="displayNameLower")
    photo_url: Optional[str] = Field(default=None, alias="photoURL")
    email: Optional[str] = None
    is_online: bool = Field(default=False, alias="isOnline")
    last_seen: Optional[datetime] = Field(default=None, alias="lastSeen")

    # Profile details (edited by the user, used for discovery)
    bio: str = ""
    location: str = ""
    work: str = ""
    education: str = ""
    interests: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="after")
    def sync_lowercase_name(self) -> "UserProfile":
        self.display_name_lower = (self.display_name or "").lower()
        return self

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "UserProfile":
        """Build from a stored document, tolerating the legacy 'uid' key."""
        payload = dict(data)
        payload.setdefault("id", payload.pop("uid", doc_id))
        return cls.model_validate(payload)
