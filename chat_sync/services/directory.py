"""
User directory: prefix search, profile edits and discovery suggestions.
"""

from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from chat_sync.config import settings
from chat_sync.context import SessionContext
from chat_sync.core.exceptions import StoreError
from chat_sync.core.logging_config import get_logger
from chat_sync.db.store import DocumentSnapshot, DocumentStore, RangeQuery
from chat_sync.models.user import UserProfile
from chat_sync.schemas.profile import ProfileUpdate
from chat_sync.services.conversation_ids import user_path

logger = get_logger(__name__)

USERS_COLLECTION = "users"
# Upper bound for "starts with": every string with the prefix sorts below prefix + this
MAX_CODEPOINT = "\U0010ffff"


def prefix_range(text: str) -> RangeQuery:
    """Half-open [text, text + MAX_CODEPOINT) range over the lowercase name projection."""
    prefix = text.lower()
    return RangeQuery(
        field="displayNameLower",
        start=prefix,
        end=prefix + MAX_CODEPOINT,
        order_by="displayNameLower",
    )


def _profile(snapshot: DocumentSnapshot) -> Optional[UserProfile]:
    try:
        return UserProfile.from_document(snapshot.id, snapshot.data)
    except PydanticValidationError as e:
        logger.warning("user_profile_malformed", path=snapshot.path, error=str(e))
        return None


class UserDirectory:
    """Reads and edits user profiles."""

    def __init__(self, store: DocumentStore, session: SessionContext, *, discovery_limit: Optional[int] = None):
        self.store = store
        self.session = session
        self.discovery_limit = discovery_limit or settings.DISCOVERY_LIMIT

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        snapshot = await self.store.get(user_path(user_id))
        if not snapshot.exists:
            return None
        return _profile(snapshot)

    async def find_by_prefix(self, text: str) -> Optional[UserProfile]:
        """
        First user whose display name starts with text (case-insensitive).

        Returns None for blank input, no match, or a failed query; the
        caller shows an inline "not found".
        """
        text = (text or "").strip()
        if not text:
            return None

        query = prefix_range(text)
        query.limit = 1
        try:
            snapshots = await self.store.query(USERS_COLLECTION, query)
        except StoreError as e:
            logger.error("user_search_failed", error=e.detail)
            return None

        if not snapshots:
            logger.info("user_not_found", query=text)
            return None
        return _profile(snapshots[0])

    async def update_profile(self, update: ProfileUpdate) -> Optional[UserProfile]:
        """Merge the edited fields into the signed-in user's profile."""
        identity = self.session.require()
        fields = update.to_fields()
        if fields:
            await self.store.set(user_path(identity.id), fields, merge=True)
            logger.info("user_profile_updated", user_id=identity.id, fields=sorted(fields))
        return await self.get_profile(identity.id)

    async def suggest(self, limit: Optional[int] = None) -> List[UserProfile]:
        """
        Other users, most shared interests first.

        Ties keep store order.
        """
        identity = self.session.require()
        limit = limit or self.discovery_limit

        try:
            me = await self.get_profile(identity.id)
            snapshots = await self.store.query(USERS_COLLECTION, RangeQuery(limit=limit))
        except StoreError as e:
            logger.error("user_suggestions_failed", error=e.detail)
            return []

        my_interests = set(me.interests) if me else set()
        candidates = [
            profile for profile in (_profile(s) for s in snapshots)
            if profile is not None and profile.id != identity.id
        ]
        candidates.sort(key=lambda p: len(my_interests.intersection(p.interests)), reverse=True)
        return candidates
