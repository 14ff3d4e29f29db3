"""
Message stream synchronizer.

Mirrors one conversation's message log, ordered by date ascending. Every
snapshot replaces the local list wholesale. The first snapshot of each
subscription lifetime only loads history; later snapshots fire the
new-message side effect when a new trailing message arrives from someone
other than the current user.
"""

from typing import Awaitable, Callable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from chat_sync.context import SessionContext
from chat_sync.core import metrics
from chat_sync.core.logging_config import get_logger
from chat_sync.db.store import DocumentSnapshot, DocumentStore, RangeQuery, Subscription, invoke_callback
from chat_sync.models.message import ChatMessage
from chat_sync.services.conversation_ids import message_log_path

logger = get_logger(__name__)

MessageHook = Callable[[ChatMessage], Union[None, Awaitable[None]]]
UpdateHook = Callable[[List[ChatMessage]], Union[None, Awaitable[None]]]


def parse_messages(snapshots: List[DocumentSnapshot]) -> List[ChatMessage]:
    messages = []
    for snapshot in snapshots:
        if not snapshot.exists:
            continue
        try:
            messages.append(ChatMessage.model_validate(snapshot.data))
        except PydanticValidationError as e:
            logger.warning("message_skipped_malformed", path=snapshot.path, error=str(e))
    return messages


class MessageStreamSynchronizer:
    """
    Live mirror of the active conversation's message log.

    Usage:
        stream = MessageStreamSynchronizer(store, session, on_new_message=play_sound)
        async with stream:
            await stream.follow("a1b2")
            ...
    """

    def __init__(
        self,
        store: DocumentStore,
        session: SessionContext,
        *,
        on_new_message: Optional[MessageHook] = None,
        on_update: Optional[UpdateHook] = None,
    ):
        self.store = store
        self.session = session
        self.on_new_message = on_new_message
        self.on_update = on_update

        self._messages: List[ChatMessage] = []
        self._conversation_id: Optional[str] = None
        self._subscription: Optional[Subscription] = None
        self._generation = 0
        self._first_snapshot = True
        self._last_trailing_id: Optional[str] = None

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    @property
    def conversation_id(self) -> Optional[str]:
        return self._conversation_id

    @property
    def is_following(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def follow(self, conversation_id: str) -> None:
        """Switch the mirror to conversation_id, tearing down the previous subscription."""
        if self.is_following and conversation_id == self._conversation_id:
            return

        await self.close()

        self._generation += 1
        generation = self._generation
        self._conversation_id = conversation_id
        self._first_snapshot = True
        self._last_trailing_id = None

        async def on_snapshot(snapshots: List[DocumentSnapshot]) -> None:
            await self._apply_snapshot(generation, snapshots)

        self._subscription = await self.store.watch_collection(
            message_log_path(conversation_id),
            on_snapshot,
            RangeQuery(order_by="date"),
        )
        logger.info("message_stream_opened", conversation_id=conversation_id)

    async def close(self) -> None:
        """Cancel the subscription and discard local state."""
        self._generation += 1
        subscription, self._subscription = self._subscription, None
        conversation_id = self._conversation_id

        self._messages = []
        self._conversation_id = None
        self._first_snapshot = True
        self._last_trailing_id = None

        if subscription is not None:
            await subscription.cancel()
            logger.info("message_stream_closed", conversation_id=conversation_id)

    async def _apply_snapshot(self, generation: int, snapshots: List[DocumentSnapshot]) -> None:
        if generation != self._generation:
            return  # late delivery for a subscription that has been torn down

        messages = parse_messages(snapshots)
        self._messages = messages

        if self.on_update is not None:
            await invoke_callback(self.on_update, list(messages))

        trailing = messages[-1] if messages else None
        previous_trailing_id = self._last_trailing_id
        self._last_trailing_id = trailing.id if trailing else None

        if self._first_snapshot:
            self._first_snapshot = False
            logger.debug(
                "message_stream_history_loaded",
                conversation_id=self._conversation_id,
                count=len(messages),
            )
            return

        if trailing is None or trailing.id == previous_trailing_id:
            return
        if trailing.sender_id == self.session.user_id or trailing.is_deleted:
            return

        metrics.message_notifications_total.inc()
        logger.debug(
            "new_message_notification",
            conversation_id=self._conversation_id,
            message_id=trailing.id,
        )
        if self.on_new_message is not None:
            await invoke_callback(self.on_new_message, trailing)

    async def __aenter__(self) -> "MessageStreamSynchronizer":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
