"""
Message composition & fan-out.

send() validates, uploads media first (a failed upload aborts before
anything is written), appends the message to the conversation log, then
rewrites the last-message summary in the sender's index and, for two-party
conversations only, the peer's index. Group sends do not fan the preview
out to other members; their lists catch up when they interact with the
conversation.
"""

import uuid
from datetime import datetime
from typing import Callable, Optional

from chat_sync.context import SessionContext
from chat_sync.core import metrics
from chat_sync.core.exceptions import BadRequestError, ForbiddenError, NotFoundError, StoreError, UploadError
from chat_sync.core.logging_config import get_logger
from chat_sync.db.store import DocumentStore, utcnow
from chat_sync.models.message import SOFT_DELETE_FIELDS, ChatMessage
from chat_sync.schemas.message import MediaAttachment, OutgoingMessage
from chat_sync.services.blob_storage import AUDIO_FOLDER, IMAGE_FOLDER, BlobStorage
from chat_sync.services.conversation_ids import message_path
from chat_sync.services.index_writer import ConversationIndexWriter
from chat_sync.services.selection import SelectionState

logger = get_logger(__name__)


class MessageComposer:
    """Builds outgoing messages and propagates their summaries."""

    def __init__(
        self,
        store: DocumentStore,
        storage: BlobStorage,
        index_writer: ConversationIndexWriter,
        session: SessionContext,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.storage = storage
        self.index_writer = index_writer
        self.session = session
        self._clock = clock

    async def send(self, conversation: SelectionState, payload: OutgoingMessage) -> Optional[ChatMessage]:
        """
        Send payload into the active conversation.

        Returns:
            The appended message, or None when nothing was written (empty
            payload, failed upload, failed append)

        Raises:
            BadRequestError: conversation is not ACTIVE
            UnauthorizedError: no signed-in user
        """
        if not conversation.is_active:
            raise BadRequestError("No active conversation to send to")
        identity = self.session.require()

        if payload.is_empty:
            logger.debug("empty_message_ignored", conversation_id=conversation.conversation_id)
            return None

        conversation_id = conversation.conversation_id

        try:
            img_url = await self._upload(payload.image, IMAGE_FOLDER, "image")
            audio_url = await self._upload(payload.audio, AUDIO_FOLDER, "audio")
        except UploadError as e:
            metrics.message_send_failures_total.labels(reason="upload").inc()
            logger.error(
                "message_send_aborted_upload_failed",
                conversation_id=conversation_id,
                error=e.detail,
            )
            return None

        message = ChatMessage(
            id=str(uuid.uuid4()),
            text=payload.text,
            sender_id=identity.id,
            sender_display_name=identity.display_name,
            sender_photo_url=identity.photo_url,
            date=self._clock(),
            img=img_url,
            audio=audio_url,
            reply_to=payload.reply_to,
        )

        try:
            await self.store.set(message_path(conversation_id, message.id), message.to_document())
        except StoreError as e:
            metrics.message_send_failures_total.labels(reason="store").inc()
            logger.error(
                "message_append_failed",
                conversation_id=conversation_id,
                message_id=message.id,
                error=e.detail,
            )
            return None

        metrics.messages_sent_total.labels(kind=message.kind).inc()
        logger.info(
            "message_sent",
            conversation_id=conversation_id,
            message_id=message.id,
            kind=message.kind,
            is_reply=message.reply_to is not None,
        )

        owners = [identity.id]
        if not conversation.is_group:
            owners.append(conversation.peer.id)

        result = await self.index_writer.record_last_message(conversation_id, owners, message.summary)
        if not result.ok:
            logger.warning(
                "last_message_fanout_incomplete",
                conversation_id=conversation_id,
                failed=list(result.failed),
            )

        return message

    async def delete(self, conversation_id: str, message_id: str) -> ChatMessage:
        """
        Soft delete one of the current user's messages.

        Blanks text/img/audio/replyTo and sets isDeleted; id, senderId and
        date are preserved. Deleting an already deleted message is a no-op
        that returns the same terminal state.

        Raises:
            NotFoundError: Message not found
            ForbiddenError: Message belongs to someone else
        """
        identity = self.session.require()
        path = message_path(conversation_id, message_id)

        snapshot = await self.store.get(path)
        if not snapshot.exists:
            raise NotFoundError("Message not found")

        message = ChatMessage.model_validate(snapshot.data)
        if message.sender_id != identity.id:
            logger.warning(
                "message_delete_blocked",
                conversation_id=conversation_id,
                message_id=message_id,
                message_sender_id=message.sender_id,
                reason="not_owner",
            )
            raise ForbiddenError("You can only delete your own messages")

        if message.is_deleted:
            return message

        await self.store.update(path, dict(SOFT_DELETE_FIELDS))
        metrics.messages_deleted_total.inc()
        logger.info("message_deleted", conversation_id=conversation_id, message_id=message_id)
        return message.soft_deleted()

    async def _upload(self, attachment: Optional[MediaAttachment], folder: str, kind: str) -> Optional[str]:
        if attachment is None:
            return None
        url = await self.storage.upload(attachment.data, folder=folder, content_type=attachment.content_type)
        logger.debug("message_media_uploaded", kind=kind, folder=folder)
        return url
