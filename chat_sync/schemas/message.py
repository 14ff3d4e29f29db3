from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from chat_sync.models.message import ReplyRef
from chat_sync.schemas import strip_markup


class MediaAttachment(BaseModel):
    """Binary payload handed to blob storage before the message is written."""
    data: bytes
    content_type: str = "application/octet-stream"

    @field_validator("data")
    @classmethod
    def non_empty(cls, v: bytes) -> bytes:
        if not v:
            raise ValueError("Attachment is empty")
        return v


class OutgoingMessage(BaseModel):
    """
    Schema for a message about to be sent.

    Carries text, an image (optionally captioned) or an audio note, plus an
    optional reply snapshot. Image and audio are mutually exclusive.
    """
    text: str = Field(default="", max_length=10000)
    image: Optional[MediaAttachment] = None
    audio: Optional[MediaAttachment] = None
    reply_to: Optional[ReplyRef] = None

    @field_validator("text")
    @classmethod
    def sanitize_text(cls, v: str) -> str:
        """Strip markup; the text is rendered, never interpreted."""
        return strip_markup(v)

    @model_validator(mode="after")
    def single_media_kind(self) -> "OutgoingMessage":
        if self.image is not None and self.audio is not None:
            raise ValueError("A message carries either an image or an audio note, not both")
        return self

    @property
    def is_empty(self) -> bool:
        return not self.text and self.image is None and self.audio is None
