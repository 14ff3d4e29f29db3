from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PeerInfo(BaseModel):
    """
    Peer (or group) metadata carried inside an index entry.

    Two-party entries describe the other participant. Group entries carry the
    shared group metadata, duplicated verbatim into every member's index.
    """
    id: str
    display_name: str = Field(default="", alias="displayName")
    photo_url: Optional[str] = Field(default=None, alias="photoURL")
    is_group: bool = Field(default=False, alias="isGroup")
    admin_id: Optional[str] = Field(default=None, alias="adminId")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class LastMessage(BaseModel):
    text: str = ""


class IndexEntry(BaseModel):
    """
    One participant's denormalized summary of one conversation.

    Stored under userChats/{owner}.{conversationId}. This is a materialized
    view: copies owned by different participants converge only when the next
    message rewrites them.
    """
    user_info: PeerInfo = Field(alias="userInfo")
    last_message: Optional[LastMessage] = Field(default=None, alias="lastMessage")
    date: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_document(self) -> dict:
        doc = {"userInfo": self.user_info.to_document()}
        if self.last_message is not None:
            doc["lastMessage"] = self.last_message.model_dump()
        if self.date is not None:
            doc["date"] = self.date
        return doc


class ConversationSummary(BaseModel):
    """Index entry paired with the conversation id it is keyed by."""
    conversation_id: str
    entry: IndexEntry

    @property
    def peer(self) -> PeerInfo:
        return self.entry.user_info

    @property
    def preview(self) -> str:
        return self.entry.last_message.text if self.entry.last_message else ""
