"""
Conversation index writes.

Membership is implicit: each participant owns a userChats/{uid} document
mapping conversation id to an index entry, and there is no canonical member
list. Every write that touches those copies goes through
ConversationIndexWriter, so a transactional multi-document implementation
can replace FanoutIndexWriter without changing callers.

All writes are merge-style and keyed by conversation id: writers touching
different conversations never conflict, writers touching the same one are
last-write-wins.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Sequence

from chat_sync.core import metrics
from chat_sync.core.logging_config import get_logger
from chat_sync.core.outcomes import BestEffortResult, best_effort
from chat_sync.db.store import SERVER_TIMESTAMP, DocumentStore
from chat_sync.models.conversation import PeerInfo
from chat_sync.services.conversation_ids import index_path

logger = get_logger(__name__)


class ConversationIndexWriter(ABC):
    """Propagates conversation summaries into participants' index documents."""

    @abstractmethod
    async def ensure_indexes(self, user_ids: Iterable[str]) -> None:
        """Make sure each user's index document exists (empty if new)."""

    @abstractmethod
    async def open_direct(self, conversation_id: str, me: PeerInfo, peer: PeerInfo) -> None:
        """Write matching entries for a new two-party conversation into both indexes."""

    @abstractmethod
    async def record_last_message(
        self, conversation_id: str, owner_ids: Sequence[str], summary: str
    ) -> BestEffortResult:
        """Rewrite lastMessage/date for conversation_id in each owner's index."""

    @abstractmethod
    async def distribute_group(self, group: PeerInfo, member_ids: Sequence[str]) -> BestEffortResult:
        """Write the same group entry into every member's index."""


class FanoutIndexWriter(ConversationIndexWriter):
    """One independent write per participant, no coordinator."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def ensure_indexes(self, user_ids: Iterable[str]) -> None:
        for user_id in user_ids:
            await self.store.set(index_path(user_id), {}, merge=True)
            logger.debug("conversation_index_ensured", user_id=user_id)

    async def open_direct(self, conversation_id: str, me: PeerInfo, peer: PeerInfo) -> None:
        # My entry describes the peer; the peer's entry describes me.
        for owner, other in ((me, peer), (peer, me)):
            await self.store.set(index_path(owner.id), {
                conversation_id: {
                    "userInfo": other.to_document(),
                    "date": SERVER_TIMESTAMP,
                },
            }, merge=True)
            metrics.index_writes_total.labels(operation="open_direct", status="success").inc()

        logger.info(
            "direct_conversation_indexed",
            conversation_id=conversation_id,
            participants=[me.id, peer.id],
        )

    async def record_last_message(
        self, conversation_id: str, owner_ids: Sequence[str], summary: str
    ) -> BestEffortResult:
        fields = {
            f"{conversation_id}.lastMessage": {"text": summary},
            f"{conversation_id}.date": SERVER_TIMESTAMP,
        }
        result = await best_effort("record_last_message", {
            owner_id: self.store.update(index_path(owner_id), fields)
            for owner_id in dict.fromkeys(owner_ids)
        })
        self._count("record_last_message", result)
        return result

    async def distribute_group(self, group: PeerInfo, member_ids: Sequence[str]) -> BestEffortResult:
        entry = {
            "userInfo": group.to_document(),
            "date": SERVER_TIMESTAMP,
        }
        result = await best_effort("distribute_group", {
            member_id: self.store.set(index_path(member_id), {group.id: entry}, merge=True)
            for member_id in dict.fromkeys(member_ids)
        })
        self._count("distribute_group", result)
        return result

    @staticmethod
    def _count(operation: str, result: BestEffortResult) -> None:
        if result.succeeded:
            metrics.index_writes_total.labels(operation=operation, status="success").inc(len(result.succeeded))
        if result.failed:
            metrics.index_writes_total.labels(operation=operation, status="error").inc(len(result.failed))
