"""Tests for identity & presence."""

import asyncio
from datetime import timedelta

import pytest

from chat_sync.context import SessionContext
from chat_sync.core.exceptions import StoreError, UnauthorizedError
from chat_sync.db.memory import InMemoryDocumentStore
from chat_sync.models.user import UserProfile
from chat_sync.services.presence import PresenceManager, describe_presence
from tests.conftest import ALICE, EPOCH


class CountingStore(InMemoryDocumentStore):
    def __init__(self, *args, fail_updates: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.updates = []
        self.fail_updates = fail_updates

    async def update(self, path, fields):
        self.updates.append((path, dict(fields)))
        if self.fail_updates:
            raise StoreError("permission denied")
        await super().update(path, fields)


@pytest.fixture
def manager(store, auth):
    return PresenceManager(store, auth, SessionContext(), heartbeat_interval=3600)


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_creates_profile_online(self, manager, store, clock):
        identity = await manager.login("alice-token")

        assert identity.id == "a1"
        assert manager.current_user == ALICE
        data = (await store.get("users/a1")).data
        assert data["displayName"] == "Alice"
        assert data["displayNameLower"] == "alice"
        assert data["isOnline"] is True
        assert data["lastSeen"] is not None
        assert "createdAt" in data
        await manager.logout()

    @pytest.mark.asyncio
    async def test_login_merges_existing_profile(self, manager, store):
        await store.set("users/a1", {"id": "a1", "bio": "Hola", "createdAt": EPOCH, "displayName": "Old"})

        await manager.login("alice-token")

        data = (await store.get("users/a1")).data
        assert data["bio"] == "Hola"
        assert data["createdAt"] == EPOCH
        assert data["displayName"] == "Alice"
        await manager.logout()

    @pytest.mark.asyncio
    async def test_rejected_credential(self, manager):
        with pytest.raises(UnauthorizedError):
            await manager.login("forged")
        assert manager.current_user is None

    @pytest.mark.asyncio
    async def test_logout_marks_offline_and_ends_session(self, manager, store, auth):
        await manager.login("alice-token")
        result = await manager.logout()

        assert result.ok
        assert (await store.get("users/a1")).data["isOnline"] is False
        assert manager.current_user is None
        assert manager.heartbeat_running is False
        assert auth.sign_outs == 1

    @pytest.mark.asyncio
    async def test_resume_existing_provider_session(self, store, auth):
        await auth.sign_in("alice-token")
        await store.set("users/a1", {"id": "a1", "isOnline": False})
        manager = PresenceManager(store, auth, SessionContext(), heartbeat_interval=3600)

        identity = await manager.resume()

        assert identity.id == "a1"
        assert (await store.get("users/a1")).data["isOnline"] is True
        await manager.logout()


class TestHeartbeat:

    @pytest.mark.asyncio
    async def test_heartbeat_refreshes_last_seen(self, clock, auth):
        store = CountingStore(clock=clock)
        manager = PresenceManager(store, auth, SessionContext(), heartbeat_interval=0.01)
        await manager.login("alice-token")

        await asyncio.sleep(0.08)
        await manager.stop_heartbeat()

        heartbeats = [fields for path, fields in store.updates if path == "users/a1"]
        assert len(heartbeats) >= 2
        assert all(f["isOnline"] is True for f in heartbeats)
        await manager.logout()

    @pytest.mark.asyncio
    async def test_failed_presence_write_is_reported_not_raised(self, clock, auth):
        store = CountingStore(clock=clock, fail_updates=True)
        manager = PresenceManager(store, auth, SessionContext(), heartbeat_interval=3600)
        await manager.login("alice-token")

        result = await manager.heartbeat_once()

        assert result.ok is False
        assert "a1" in result.failed
        offline = await manager.logout()
        assert offline.ok is False
        assert manager.current_user is None

    @pytest.mark.asyncio
    async def test_page_closing_writes_offline(self, manager, store):
        await manager.login("alice-token")

        result = await manager.page_closing()

        assert result.ok
        assert manager.heartbeat_running is False
        assert (await store.get("users/a1")).data["isOnline"] is False
        await manager.logout()

    @pytest.mark.asyncio
    async def test_no_writes_without_session(self, manager):
        result = await manager.heartbeat_once()
        assert result.ok and result.succeeded == []


class TestDescribePresence:

    def _profile(self, *, online, seen_ago):
        return UserProfile(id="b2", is_online=online, last_seen=EPOCH - seen_ago)

    def test_recent_heartbeat_is_online(self):
        assert describe_presence(self._profile(online=True, seen_ago=timedelta(seconds=30)), EPOCH) == "online"

    def test_stale_online_flag_falls_back_to_age(self):
        profile = self._profile(online=True, seen_ago=timedelta(minutes=10))
        assert describe_presence(profile, EPOCH) == "10m ago"

    def test_offline_flag_shows_minutes(self):
        assert describe_presence(self._profile(online=False, seen_ago=timedelta(seconds=20)), EPOCH) == "1m ago"

    def test_hours(self):
        assert describe_presence(self._profile(online=False, seen_ago=timedelta(hours=5, minutes=3)), EPOCH) == "5h ago"

    def test_beyond_recent_window_is_offline(self):
        assert describe_presence(self._profile(online=True, seen_ago=timedelta(days=2)), EPOCH) == "offline"

    def test_never_seen(self):
        assert describe_presence(UserProfile(id="b2", is_online=True), EPOCH) == "offline"
