"""
Identity & presence.

Presence is soft-real-time. A successful heartbeat every
HEARTBEAT_INTERVAL_SECONDS keeps isOnline/lastSeen fresh; logout and the
page-closing hook flip isOnline off. All of these writes are best-effort:
a failure leaves stale presence until the next heartbeat, and nothing is
retried. Because an ungracefully closed session may never flip isOnline,
readers derive a status from lastSeen age (describe_presence) instead of
trusting the flag alone.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

from chat_sync.config import settings
from chat_sync.context import SessionContext
from chat_sync.core import metrics
from chat_sync.core.exceptions import StoreError
from chat_sync.core.logging_config import get_logger
from chat_sync.core.outcomes import BestEffortResult, best_effort
from chat_sync.db.store import SERVER_TIMESTAMP, DocumentStore, utcnow
from chat_sync.models.user import Identity, UserProfile
from chat_sync.services.auth_provider import AuthProvider
from chat_sync.services.conversation_ids import user_path

logger = get_logger(__name__)


def describe_presence(
    profile: UserProfile,
    now: Optional[datetime] = None,
    *,
    online_window: Optional[timedelta] = None,
    recent_window: Optional[timedelta] = None,
) -> str:
    """
    Human-readable status derived from lastSeen age.

    Returns "online" only when the flag is set and a heartbeat landed within
    the online window; otherwise "Nm ago" / "Nh ago" inside the recent
    window, and "offline" beyond it or when lastSeen was never written.
    """
    if profile.last_seen is None:
        return "offline"

    now = now or utcnow()
    online_window = online_window or timedelta(seconds=settings.PRESENCE_ONLINE_WINDOW_SECONDS)
    recent_window = recent_window or timedelta(hours=settings.PRESENCE_RECENT_HOURS)

    age = now - profile.last_seen
    if age < timedelta(0):
        age = timedelta(0)  # clock skew between writer and reader

    if profile.is_online and age <= online_window:
        return "online"
    if age >= recent_window:
        return "offline"

    minutes = int(age.total_seconds() // 60)
    if minutes < 60:
        return f"{max(minutes, 1)}m ago"
    return f"{minutes // 60}h ago"


class PresenceManager:
    """
    Owns the authenticated session and the online/offline liveness signal.

    Exposes current_user, login(), logout(), resume() and page_closing().
    """

    def __init__(
        self,
        store: DocumentStore,
        auth: AuthProvider,
        session: SessionContext,
        *,
        heartbeat_interval: Optional[float] = None,
    ):
        self.store = store
        self.auth = auth
        self.session = session
        self.heartbeat_interval = heartbeat_interval or settings.HEARTBEAT_INTERVAL_SECONDS
        self._heartbeat_task: Optional[asyncio.Task] = None

    @property
    def current_user(self) -> Optional[Identity]:
        return self.session.identity

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def login(self, credential: str) -> Identity:
        """
        Sign in, upsert the user record and start the heartbeat.

        The upsert merges, so fields this client does not own (profile
        details, createdAt) survive.

        Raises:
            UnauthorizedError: Provider rejected the credential
        """
        identity = await self.auth.sign_in(credential)
        await self._upsert_profile(identity)
        self.session.begin(identity)
        self.start_heartbeat()
        return identity

    async def resume(self) -> Optional[Identity]:
        """Pick up a provider session that is still valid and mark it online."""
        identity = self.auth.current_identity()
        if identity is None:
            return None
        self.session.begin(identity)
        await self.heartbeat_once(operation="resume")
        self.start_heartbeat()
        return identity

    async def logout(self) -> BestEffortResult:
        """Stop the heartbeat, mark offline, end provider and local sessions."""
        await self.stop_heartbeat()
        result = BestEffortResult(operation="logout")
        if self.session.is_authenticated:
            result = await self.mark_offline(operation="logout")
        await self.auth.sign_out()
        self.session.end()
        return result

    async def page_closing(self) -> BestEffortResult:
        """Best-effort offline write for an application that is going away."""
        await self.stop_heartbeat()
        if not self.session.is_authenticated:
            return BestEffortResult(operation="page_closing")
        return await self.mark_offline(operation="page_closing")

    async def _upsert_profile(self, identity: Identity) -> None:
        path = user_path(identity.id)
        display_name = identity.display_name or ""
        fields = {
            "id": identity.id,
            "displayName": display_name,
            "displayNameLower": display_name.lower(),
            "email": identity.email,
            "photoURL": identity.photo_url,
            "lastSeen": SERVER_TIMESTAMP,
            "isOnline": True,
        }
        try:
            existing = await self.store.get(path)
            if not existing.exists:
                fields["createdAt"] = SERVER_TIMESTAMP
            await self.store.set(path, fields, merge=True)
            metrics.presence_writes_total.labels(operation="login", status="success").inc()
            logger.info("user_profile_upserted", user_id=identity.id, created=not existing.exists)
        except StoreError as e:
            # The session still starts; presence catches up on the next heartbeat
            metrics.presence_writes_total.labels(operation="login", status="error").inc()
            logger.error("user_profile_upsert_failed", user_id=identity.id, error=str(e))

    # ------------------------------------------------------------------
    # Best-effort presence writes
    # ------------------------------------------------------------------

    async def heartbeat_once(self, operation: str = "heartbeat") -> BestEffortResult:
        return await self._write_presence(operation, is_online=True)

    async def mark_offline(self, operation: str = "offline") -> BestEffortResult:
        return await self._write_presence(operation, is_online=False)

    async def _write_presence(self, operation: str, *, is_online: bool) -> BestEffortResult:
        user_id = self.session.user_id
        if user_id is None:
            return BestEffortResult(operation=operation)

        result = await best_effort(operation, {
            user_id: self.store.update(user_path(user_id), {
                "isOnline": is_online,
                "lastSeen": SERVER_TIMESTAMP,
            }),
        })
        status = "success" if result.ok else "error"
        metrics.presence_writes_total.labels(operation=operation, status=status).inc()
        return result

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    def start_heartbeat(self) -> None:
        if self.heartbeat_running:
            return
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        logger.debug("heartbeat_started", interval=self.heartbeat_interval)

    async def stop_heartbeat(self) -> None:
        if self._heartbeat_task is None:
            return
        self._heartbeat_task.cancel()
        try:
            await self._heartbeat_task
        except asyncio.CancelledError:
            pass
        self._heartbeat_task = None
        logger.debug("heartbeat_stopped")

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            await self.heartbeat_once()
