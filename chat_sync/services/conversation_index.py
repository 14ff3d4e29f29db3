"""
Conversation index aggregator.

Follows the signed-in user's own userChats document and keeps a list of
conversation summaries, newest first. Entries without usable peer metadata
are skipped. Also starts two-party conversations from a found user.
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from chat_sync.context import SessionContext
from chat_sync.core.exceptions import StoreError
from chat_sync.core.logging_config import get_logger
from chat_sync.db.store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, Subscription, invoke_callback
from chat_sync.models.conversation import ConversationSummary, IndexEntry, PeerInfo
from chat_sync.models.user import UserProfile
from chat_sync.services.conversation_ids import conversation_path, index_path, resolve_conversation_id
from chat_sync.services.directory import UserDirectory
from chat_sync.services.index_writer import ConversationIndexWriter
from chat_sync.services.selection import as_peer

logger = get_logger(__name__)

IndexHook = Callable[[List[ConversationSummary]], Union[None, Awaitable[None]]]

_PENDING = datetime.max.replace(tzinfo=timezone.utc)


def parse_index(data: Optional[dict]) -> List[ConversationSummary]:
    """Index document -> summaries sorted by date descending."""
    summaries = []
    for conversation_id, raw in (data or {}).items():
        if not isinstance(raw, dict) or not isinstance(raw.get("userInfo"), dict):
            logger.debug("index_entry_skipped", conversation_id=conversation_id, reason="missing_user_info")
            continue
        try:
            entry = IndexEntry.model_validate(raw)
        except PydanticValidationError as e:
            logger.debug("index_entry_skipped", conversation_id=conversation_id, reason=str(e))
            continue
        summaries.append(ConversationSummary(conversation_id=conversation_id, entry=entry))

    # An entry without a date is a write still in flight: it is the newest.
    summaries.sort(key=lambda s: s.entry.date or _PENDING, reverse=True)
    return summaries


class ConversationIndexAggregator:
    """Live, sorted view of the current user's conversations."""

    def __init__(
        self,
        store: DocumentStore,
        directory: UserDirectory,
        index_writer: ConversationIndexWriter,
        session: SessionContext,
        *,
        on_change: Optional[IndexHook] = None,
    ):
        self.store = store
        self.directory = directory
        self.index_writer = index_writer
        self.session = session
        self.on_change = on_change

        self._summaries: List[ConversationSummary] = []
        self._subscription: Optional[Subscription] = None
        self._generation = 0

    @property
    def conversations(self) -> List[ConversationSummary]:
        return list(self._summaries)

    def filter(self, text: str) -> List[ConversationSummary]:
        """Conversations whose peer or group name contains text (case-insensitive)."""
        needle = (text or "").strip().lower()
        if not needle:
            return self.conversations
        return [s for s in self._summaries if needle in (s.peer.display_name or "").lower()]

    async def open(self) -> None:
        """Subscribe to the signed-in user's index document."""
        identity = self.session.require()
        await self.close()

        self._generation += 1
        generation = self._generation

        async def on_snapshot(snapshot: DocumentSnapshot) -> None:
            if generation != self._generation:
                return
            self._summaries = parse_index(snapshot.data)
            if self.on_change is not None:
                await invoke_callback(self.on_change, self.conversations)

        self._subscription = await self.store.watch_document(index_path(identity.id), on_snapshot)
        logger.info("conversation_index_opened", user_id=identity.id)

    async def close(self) -> None:
        self._generation += 1
        subscription, self._subscription = self._subscription, None
        self._summaries = []
        if subscription is not None:
            await subscription.cancel()
            logger.info("conversation_index_closed")

    async def search(self, text: str) -> Optional[UserProfile]:
        """Prefix search over display names; None means "not found"."""
        return await self.directory.find_by_prefix(text)

    async def start_conversation(self, user: Union[UserProfile, PeerInfo]) -> str:
        """
        Create (or reuse) the two-party conversation with user.

        Probes the conversation document, creates it when absent, and writes
        matching entries into both indexes. If the probe fails, both index
        documents are created empty and the whole operation is retried once.
        Failures are logged, never raised; the conversation id is returned
        either way so the caller can select it.
        """
        identity = self.session.require()
        me = self.session.as_peer()
        peer = as_peer(user)
        conversation_id = resolve_conversation_id(identity.id, peer)

        try:
            await self._open_direct(conversation_id, me, peer)
        except StoreError as e:
            logger.warning(
                "conversation_probe_failed_retrying",
                conversation_id=conversation_id,
                error=e.detail,
            )
            try:
                await self.index_writer.ensure_indexes([me.id, peer.id])
                await self._open_direct(conversation_id, me, peer)
            except StoreError as retry_error:
                logger.error(
                    "conversation_open_failed",
                    conversation_id=conversation_id,
                    error=retry_error.detail,
                )

        return conversation_id

    async def _open_direct(self, conversation_id: str, me: PeerInfo, peer: PeerInfo) -> None:
        path = conversation_path(conversation_id)
        snapshot = await self.store.get(path)
        if not snapshot.exists:
            await self.store.set(path, {"createdAt": SERVER_TIMESTAMP})
            logger.info("conversation_created", conversation_id=conversation_id)
        await self.index_writer.open_direct(conversation_id, me, peer)

    async def __aenter__(self) -> "ConversationIndexAggregator":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
