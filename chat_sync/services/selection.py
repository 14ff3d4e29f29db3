"""
Conversation selection state machine.

States:
    NONE    no conversation active (conversation id sentinel "null")
    ACTIVE  a conversation and its peer/group info
    FEED    the social wall pseudo-state

Session scoped and never persisted; a fresh instance starts in NONE. The
reply draft belongs to the active conversation and is dropped on every
transition.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Union

from chat_sync.context import SessionContext
from chat_sync.core.logging_config import get_logger
from chat_sync.models.conversation import PeerInfo
from chat_sync.models.message import ChatMessage, ReplyRef
from chat_sync.models.user import UserProfile
from chat_sync.services.conversation_ids import resolve_conversation_id

logger = get_logger(__name__)

NULL_CONVERSATION_ID = "null"
FEED_ID = "feed"
FEED_PEER = PeerInfo(id=FEED_ID, display_name="Comunidad", photo_url="")


class SelectionMode(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    FEED = "feed"


@dataclass(frozen=True)
class SelectionState:
    mode: SelectionMode = SelectionMode.NONE
    conversation_id: str = NULL_CONVERSATION_ID
    peer: Optional[PeerInfo] = None

    @property
    def is_active(self) -> bool:
        return self.mode is SelectionMode.ACTIVE

    @property
    def is_group(self) -> bool:
        return self.peer is not None and self.peer.is_group


NONE_STATE = SelectionState()
FEED_STATE = SelectionState(mode=SelectionMode.FEED, conversation_id=NULL_CONVERSATION_ID, peer=FEED_PEER)

Listener = Callable[[SelectionState, SelectionState], None]


def as_peer(target: Union[PeerInfo, UserProfile]) -> PeerInfo:
    if isinstance(target, PeerInfo):
        return target
    return PeerInfo(id=target.id, display_name=target.display_name, photo_url=target.photo_url)


class ConversationSelection:
    """Which conversation is active, plus the reply in progress."""

    def __init__(self, session: SessionContext):
        self.session = session
        self._state = NONE_STATE
        self._reply_to: Optional[ReplyRef] = None
        self._listeners: List[Listener] = []

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def reply_to(self) -> Optional[ReplyRef]:
        return self._reply_to

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def select(self, target: Optional[Union[PeerInfo, UserProfile]]) -> SelectionState:
        """
        SELECT transition.

        None closes the conversation, the feed marker enters FEED, anything
        else resolves the conversation id and enters ACTIVE. Without an
        authenticated user the call is a no-op.
        """
        if target is None:
            return self.close()

        identity = self.session.identity
        if identity is None:
            logger.debug("selection_ignored_no_session")
            return self._state

        peer = as_peer(target)
        if peer.id == FEED_ID:
            return self._transition(FEED_STATE)

        conversation_id = resolve_conversation_id(identity.id, peer)
        return self._transition(SelectionState(
            mode=SelectionMode.ACTIVE,
            conversation_id=conversation_id,
            peer=peer,
        ))

    def open_feed(self) -> SelectionState:
        return self.select(FEED_PEER)

    def close(self) -> SelectionState:
        return self._transition(NONE_STATE)

    def reset(self) -> None:
        """Back to NONE without notifying; used when the session ends."""
        self._state = NONE_STATE
        self._reply_to = None

    def start_reply(self, message: ChatMessage) -> ReplyRef:
        if not self._state.is_active:
            raise ValueError("Replies need an active conversation")
        if message.is_deleted:
            raise ValueError("Cannot reply to a deleted message")
        self._reply_to = ReplyRef.from_message(message)
        return self._reply_to

    def cancel_reply(self) -> None:
        self._reply_to = None

    def _transition(self, new_state: SelectionState) -> SelectionState:
        old_state = self._state
        if new_state == old_state:
            return old_state

        self._state = new_state
        self._reply_to = None
        logger.info(
            "conversation_selected",
            mode=new_state.mode.value,
            conversation_id=new_state.conversation_id,
        )
        for listener in list(self._listeners):
            listener(old_state, new_state)
        return new_state
