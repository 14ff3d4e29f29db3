from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from chat_sync.schemas import strip_markup


class ProfileUpdate(BaseModel):
    """Schema for editing the signed-in user's own profile. Unset fields are left alone."""
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    bio: Optional[str] = Field(default=None, max_length=500)
    location: Optional[str] = Field(default=None, max_length=100)
    work: Optional[str] = Field(default=None, max_length=100)
    education: Optional[str] = Field(default=None, max_length=100)
    interests: Optional[List[str]] = None

    @field_validator("display_name", "bio", "location", "work", "education")
    @classmethod
    def sanitize(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return strip_markup(v)

    @field_validator("interests")
    @classmethod
    def dedupe_interests(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        seen = []
        for interest in v:
            interest = interest.strip()
            if interest and interest not in seen:
                seen.append(interest)
        return seen

    def to_fields(self) -> dict:
        """Stored field names, with displayNameLower kept in sync with displayName."""
        fields = {}
        if self.display_name is not None:
            fields["displayName"] = self.display_name
            fields["displayNameLower"] = self.display_name.lower()
        for name in ("bio", "location", "work", "education", "interests"):
            value = getattr(self, name)
            if value is not None:
                fields[name] = value
        return fields
