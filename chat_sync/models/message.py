from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

PHOTO_PLACEHOLDER = "📷 Foto"
AUDIO_PLACEHOLDER = "🎤 Nota de voz"


def summarize(text: Optional[str], img: Optional[str], audio: Optional[str]) -> str:
    """
    Human-readable last-message summary for the conversation index.

    Audio wins over everything, then text, then the photo placeholder.
    """
    if audio:
        return AUDIO_PLACEHOLDER
    if text:
        return text
    return PHOTO_PLACEHOLDER


class ReplyRef(BaseModel):
    """
    Frozen snapshot of a quoted message, stored inline with the reply.

    It is never refreshed when the original is edited or soft-deleted.
    """
    id: str
    text: str = ""
    sender_display_name: Optional[str] = Field(default=None, alias="senderDisplayName")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def from_message(cls, message: "ChatMessage") -> "ReplyRef":
        if message.img or message.audio:
            text = summarize(message.text, message.img, message.audio)
        else:
            text = message.text
        return cls(
            id=message.id,
            text=text,
            sender_display_name=message.sender_display_name,
        )


class ChatMessage(BaseModel):
    """
    Document stored at chats/{conversationId}/messages/{id}.

    Ordered by date ascending. Identity (id, senderId, date) is immutable;
    the only mutation is a soft delete.
    """
    id: str
    text: str = ""
    sender_id: str = Field(alias="senderId")
    sender_display_name: Optional[str] = Field(default=None, alias="senderDisplayName")
    sender_photo_url: Optional[str] = Field(default=None, alias="senderPhotoURL")
    date: datetime
    img: Optional[str] = None
    audio: Optional[str] = None
    reply_to: Optional[ReplyRef] = Field(default=None, alias="replyTo")
    is_deleted: bool = Field(default=False, alias="isDeleted")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def kind(self) -> str:
        if self.audio:
            return "audio"
        if self.img:
            return "image"
        return "text"

    @property
    def summary(self) -> str:
        return summarize(self.text, self.img, self.audio)

    def to_document(self) -> dict:
        doc = self.model_dump(by_alias=True, exclude={"reply_to"})
        if self.reply_to is not None:
            doc["replyTo"] = self.reply_to.model_dump(by_alias=True)
        return doc

    def soft_deleted(self) -> "ChatMessage":
        """Terminal deleted state: content blanked, identity preserved."""
        return self.model_copy(update={
            "text": "",
            "img": None,
            "audio": None,
            "reply_to": None,
            "is_deleted": True,
        })


SOFT_DELETE_FIELDS = {
    "text": "",
    "img": None,
    "audio": None,
    "replyTo": None,
    "isDeleted": True,
}
