"""
Group membership fan-out.

A group gets a fresh opaque id, an empty conversation document, and one
shared metadata object written into every member's index concurrently.
The writes are independent: on partial failure the group exists but only
some members see it, and nothing is rolled back.
"""

import uuid
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from chat_sync.config import settings
from chat_sync.context import SessionContext
from chat_sync.core.exceptions import StoreError, ValidationError
from chat_sync.core.logging_config import get_logger
from chat_sync.core.outcomes import BestEffortResult
from chat_sync.db.store import SERVER_TIMESTAMP, DocumentStore
from chat_sync.models.conversation import PeerInfo
from chat_sync.models.user import UserProfile
from chat_sync.schemas.group import GroupCreate
from chat_sync.services.conversation_ids import conversation_path
from chat_sync.services.index_writer import ConversationIndexWriter
from chat_sync.services.selection import as_peer

logger = get_logger(__name__)


@dataclass
class GroupCreated:
    group: PeerInfo
    fanout: BestEffortResult


class GroupService:
    """Creates group conversations."""

    def __init__(
        self,
        store: DocumentStore,
        index_writer: ConversationIndexWriter,
        session: SessionContext,
        *,
        default_photo_url: Optional[str] = None,
    ):
        self.store = store
        self.index_writer = index_writer
        self.session = session
        self.default_photo_url = default_photo_url or settings.GROUP_DEFAULT_PHOTO_URL

    async def create_group(
        self,
        name: str,
        members: Sequence[Union[PeerInfo, UserProfile]],
    ) -> Optional[GroupCreated]:
        """
        Create a group with the signed-in user as admin.

        Returns:
            GroupCreated with the shared metadata and the per-member fan-out
            outcome, or None if the conversation document could not be created

        Raises:
            ValidationError: blank or oversized name
        """
        identity = self.session.require()
        try:
            request = GroupCreate(name=name, members=[as_peer(m) for m in members])
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid group: {e.errors()[0]['msg']}") from e

        group_id = str(uuid.uuid4())
        group = PeerInfo(
            id=group_id,
            display_name=request.name,
            photo_url=self.default_photo_url,
            is_group=True,
            admin_id=identity.id,
        )

        try:
            await self.store.set(conversation_path(group_id), {
                "isGroup": True,
                "createdAt": SERVER_TIMESTAMP,
            })
        except StoreError as e:
            logger.error("group_create_failed", group_id=group_id, error=e.detail)
            return None

        member_ids = [identity.id] + [m.id for m in request.members if m.id != identity.id]
        fanout = await self.index_writer.distribute_group(group, member_ids)

        logger.info(
            "group_created",
            group_id=group_id,
            member_count=len(fanout.succeeded) + len(fanout.failed),
            failed_members=list(fanout.failed),
        )
        return GroupCreated(group=group, fanout=fanout)
