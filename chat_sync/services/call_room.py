"""Video-call room handoff: the room id is the active conversation id."""

from typing import Optional

from pydantic import BaseModel

from chat_sync.config import settings
from chat_sync.core.exceptions import BadRequestError
from chat_sync.models.user import Identity
from chat_sync.services.selection import SelectionState


class CallRoom(BaseModel):
    room_id: str
    user_id: str
    user_name: str
    share_url: str


def build_call_room(state: SelectionState, identity: Identity, base_url: Optional[str] = None) -> CallRoom:
    if not state.is_active:
        raise BadRequestError("A call needs an active conversation")
    base_url = (base_url or settings.ROOM_BASE_URL).rstrip("/")
    return CallRoom(
        room_id=state.conversation_id,
        user_id=identity.id,
        user_name=identity.display_name or "Usuario",
        share_url=f"{base_url}/{state.conversation_id}",
    )
