"""
ChatClient - composition root and lifecycle owner.

Builds every component around one store, one session context and one
selection state machine, routes selection changes to the message stream,
and tears subscriptions down on sign-out and close.

Usage:
    async with ChatClient.from_settings() as client:
        await client.login(id_token)
        user = await client.search_user("bo")
        await client.open_conversation_with(user)
        await client.send_text("hola")
"""

from typing import List, Optional, Sequence, Union

from chat_sync.config import settings
from chat_sync.context import SessionContext, ThemeContext
from chat_sync.core.exceptions import BadRequestError
from chat_sync.core.logging_config import get_logger, setup_logging
from chat_sync.core.outcomes import BestEffortResult
from chat_sync.db.memory import InMemoryDocumentStore
from chat_sync.db.store import DocumentStore
from chat_sync.models.conversation import ConversationSummary, PeerInfo
from chat_sync.models.message import ChatMessage
from chat_sync.models.user import Identity, UserProfile
from chat_sync.schemas.message import MediaAttachment, OutgoingMessage
from chat_sync.schemas.profile import ProfileUpdate
from chat_sync.services.auth_provider import AuthProvider, JwtAuthProvider
from chat_sync.services.blob_storage import BlobStorage, HttpBlobStorage
from chat_sync.services.call_room import CallRoom, build_call_room
from chat_sync.services.composer import MessageComposer
from chat_sync.services.conversation_index import ConversationIndexAggregator
from chat_sync.services.directory import UserDirectory
from chat_sync.services.groups import GroupCreated, GroupService
from chat_sync.services.index_writer import ConversationIndexWriter, FanoutIndexWriter
from chat_sync.services.message_stream import MessageHook, MessageStreamSynchronizer
from chat_sync.services.presence import PresenceManager
from chat_sync.services.selection import ConversationSelection, SelectionState

logger = get_logger(__name__)


class ChatClient:
    """Facade over the sync engine for one signed-in user at a time."""

    def __init__(
        self,
        store: DocumentStore,
        auth: AuthProvider,
        storage: BlobStorage,
        *,
        theme: Optional[ThemeContext] = None,
        index_writer: Optional[ConversationIndexWriter] = None,
        on_new_message: Optional[MessageHook] = None,
        heartbeat_interval: Optional[float] = None,
    ):
        self.store = store
        self.auth = auth
        self.storage = storage
        self.session = SessionContext()
        self.theme = theme

        self.index_writer = index_writer or FanoutIndexWriter(store)
        self.presence = PresenceManager(store, auth, self.session, heartbeat_interval=heartbeat_interval)
        self.selection = ConversationSelection(self.session)
        self.directory = UserDirectory(store, self.session)
        self.stream = MessageStreamSynchronizer(store, self.session, on_new_message=on_new_message)
        self.composer = MessageComposer(store, storage, self.index_writer, self.session)
        self.index = ConversationIndexAggregator(store, self.directory, self.index_writer, self.session)
        self.groups = GroupService(store, self.index_writer, self.session)

    @classmethod
    async def from_settings(cls, **kwargs) -> "ChatClient":
        """Build a client from the configured store backend."""
        setup_logging()
        if settings.STORE_BACKEND == "mongodb":
            from chat_sync.db.mongodb import init_store
            store = await init_store()
        elif settings.STORE_BACKEND == "memory":
            store = InMemoryDocumentStore()
        else:
            raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")

        kwargs.setdefault("theme", ThemeContext())
        return cls(store, JwtAuthProvider(), HttpBlobStorage(), **kwargs)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self.storage.start()
        identity = await self.presence.resume()
        if identity is not None:
            await self.index.open()
        logger.info("chat_client_started", resumed=identity is not None)

    async def close(self) -> None:
        await self.presence.page_closing()
        await self._teardown_views()
        await self.storage.close()
        await self.store.close()
        logger.info("chat_client_closed")

    async def __aenter__(self) -> "ChatClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def current_user(self) -> Optional[Identity]:
        return self.presence.current_user

    async def login(self, credential: str) -> Identity:
        identity = await self.presence.login(credential)
        await self.index.open()
        return identity

    async def logout(self) -> BestEffortResult:
        await self._teardown_views()
        return await self.presence.logout()

    async def _teardown_views(self) -> None:
        await self.stream.close()
        await self.index.close()
        self.selection.reset()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def select(self, target: Optional[Union[PeerInfo, UserProfile]]) -> SelectionState:
        state = self.selection.select(target)
        if state.is_active:
            await self.stream.follow(state.conversation_id)
        else:
            await self.stream.close()
        return state

    async def open_feed(self) -> SelectionState:
        state = self.selection.open_feed()
        await self.stream.close()
        return state

    async def close_conversation(self) -> SelectionState:
        return await self.select(None)

    @property
    def messages(self) -> List[ChatMessage]:
        return self.stream.messages

    @property
    def conversations(self) -> List[ConversationSummary]:
        return self.index.conversations

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    def reply_to(self, message: ChatMessage) -> None:
        self.selection.start_reply(message)

    def cancel_reply(self) -> None:
        self.selection.cancel_reply()

    async def send(self, payload: OutgoingMessage) -> Optional[ChatMessage]:
        if payload.reply_to is None and self.selection.reply_to is not None:
            payload = payload.model_copy(update={"reply_to": self.selection.reply_to})
        message = await self.composer.send(self.selection.state, payload)
        if message is not None:
            self.selection.cancel_reply()
        return message

    async def send_text(self, text: str) -> Optional[ChatMessage]:
        return await self.send(OutgoingMessage(text=text))

    async def send_image(self, data: bytes, content_type: str = "image/jpeg", caption: str = "") -> Optional[ChatMessage]:
        return await self.send(OutgoingMessage(
            text=caption,
            image=MediaAttachment(data=data, content_type=content_type),
        ))

    async def send_audio(self, data: bytes, content_type: str = "audio/webm") -> Optional[ChatMessage]:
        return await self.send(OutgoingMessage(audio=MediaAttachment(data=data, content_type=content_type)))

    async def delete_message(self, message_id: str) -> ChatMessage:
        state = self.selection.state
        if not state.is_active:
            raise BadRequestError("No active conversation")
        return await self.composer.delete(state.conversation_id, message_id)

    # ------------------------------------------------------------------
    # Conversations, groups, people
    # ------------------------------------------------------------------

    async def search_user(self, text: str) -> Optional[UserProfile]:
        return await self.index.search(text)

    async def open_conversation_with(self, user: Union[UserProfile, PeerInfo]) -> SelectionState:
        await self.index.start_conversation(user)
        return await self.select(user)

    async def create_group(self, name: str, members: Sequence[Union[PeerInfo, UserProfile]]) -> Optional[GroupCreated]:
        return await self.groups.create_group(name, members)

    async def update_profile(self, update: ProfileUpdate) -> Optional[UserProfile]:
        return await self.directory.update_profile(update)

    async def suggestions(self, limit: Optional[int] = None) -> List[UserProfile]:
        return await self.directory.suggest(limit)

    def call_room(self) -> CallRoom:
        return build_call_room(self.selection.state, self.session.require())
