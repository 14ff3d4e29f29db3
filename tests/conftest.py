"""
Pytest configuration and shared fixtures.

- Deterministic clock shared by the store and the composer
- In-memory document store
- Fake auth provider and blob storage collaborators
- Sessions and profiles for three users: a1 (Alice), b2 (Bob), c3 (Carol)
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from chat_sync.context import SessionContext
from chat_sync.core.exceptions import UnauthorizedError, UploadError
from chat_sync.db.memory import InMemoryDocumentStore
from chat_sync.models.conversation import PeerInfo
from chat_sync.models.user import Identity
from chat_sync.services.auth_provider import AuthProvider
from chat_sync.services.blob_storage import BlobStorage
from chat_sync.services.composer import MessageComposer
from chat_sync.services.index_writer import FanoutIndexWriter

EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class TickClock:
    """Returns a strictly increasing timestamp, one second apart, per call."""

    def __init__(self, start: datetime = EPOCH):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


class FakeAuthProvider(AuthProvider):
    """Credential string -> identity lookup."""

    def __init__(self, identities: Dict[str, Identity]):
        self.identities = identities
        self._identity: Optional[Identity] = None
        self.sign_outs = 0

    async def sign_in(self, credential: str) -> Identity:
        if credential not in self.identities:
            raise UnauthorizedError("Unknown credential")
        self._identity = self.identities[credential]
        return self._identity

    async def sign_out(self) -> None:
        self.sign_outs += 1
        self._identity = None

    def current_identity(self) -> Optional[Identity]:
        return self._identity


class FakeBlobStorage(BlobStorage):
    """Records uploads and hands back predictable URLs."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.uploads: List[dict] = []

    async def upload(self, data: bytes, *, folder: str, content_type: str) -> str:
        if self.fail:
            raise UploadError("storage unavailable")
        self.uploads.append({"data": data, "folder": folder, "content_type": content_type})
        return f"https://blobs.test/{folder}/{len(self.uploads)}"


ALICE = Identity(id="a1", display_name="Alice", photo_url="https://img.test/alice.png", email="alice@test")
BOB = Identity(id="b2", display_name="Bob", photo_url="https://img.test/bob.png", email="bob@test")
CAROL = Identity(id="c3", display_name="Carol", photo_url="https://img.test/carol.png", email="carol@test")


def peer_of(identity: Identity) -> PeerInfo:
    return PeerInfo(id=identity.id, display_name=identity.display_name, photo_url=identity.photo_url)


def session_for(identity: Optional[Identity]) -> SessionContext:
    session = SessionContext()
    if identity is not None:
        session.begin(identity)
    return session


async def seed_user(store, identity: Identity, **extra) -> None:
    await store.set(f"users/{identity.id}", {
        "id": identity.id,
        "displayName": identity.display_name,
        "displayNameLower": identity.display_name.lower(),
        "photoURL": identity.photo_url,
        "isOnline": False,
        **extra,
    })


@pytest.fixture
def clock():
    return TickClock()


@pytest.fixture
def store(clock):
    return InMemoryDocumentStore(clock=clock)


@pytest.fixture
def storage():
    return FakeBlobStorage()


@pytest.fixture
def auth():
    return FakeAuthProvider({
        "alice-token": ALICE,
        "bob-token": BOB,
        "carol-token": CAROL,
    })


@pytest.fixture
def writer(store):
    return FanoutIndexWriter(store)


@pytest.fixture
def alice_session():
    return session_for(ALICE)


@pytest.fixture
def bob_session():
    return session_for(BOB)


@pytest.fixture
def alice_composer(store, storage, writer, alice_session, clock):
    return MessageComposer(store, storage, writer, alice_session, clock=clock)


@pytest.fixture
def bob_composer(store, storage, writer, bob_session, clock):
    return MessageComposer(store, storage, writer, bob_session, clock=clock)
