"""Tests for the conversation index aggregator and conversation start."""

from datetime import timedelta

import pytest

from chat_sync.core.exceptions import StoreError
from chat_sync.db.memory import InMemoryDocumentStore
from chat_sync.schemas.message import OutgoingMessage
from chat_sync.services.conversation_index import ConversationIndexAggregator, parse_index
from chat_sync.services.directory import UserDirectory
from chat_sync.services.index_writer import FanoutIndexWriter
from chat_sync.services.selection import ConversationSelection
from tests.conftest import ALICE, BOB, CAROL, EPOCH, peer_of, seed_user, session_for


class FlakyProbeStore(InMemoryDocumentStore):
    """Fails the first `failures` reads of a conversation document."""

    def __init__(self, failures: int, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.probes = 0

    async def get(self, path):
        if path.startswith("chats/"):
            self.probes += 1
            if self.probes <= self.failures:
                raise StoreError("probe failed")
        return await super().get(path)


def aggregator_for(store, identity, **kwargs):
    session = session_for(identity)
    return ConversationIndexAggregator(
        store,
        UserDirectory(store, session),
        FanoutIndexWriter(store),
        session,
        **kwargs,
    )


def entry(peer_id, name, date=None, text=None):
    raw = {"userInfo": {"id": peer_id, "displayName": name}}
    if date is not None:
        raw["date"] = date
    if text is not None:
        raw["lastMessage"] = {"text": text}
    return raw


class TestParseIndex:

    def test_sorted_newest_first(self):
        summaries = parse_index({
            "a1b2": entry("b2", "Bob", EPOCH),
            "a1c3": entry("c3", "Carol", EPOCH + timedelta(minutes=5)),
        })

        assert [s.conversation_id for s in summaries] == ["a1c3", "a1b2"]

    def test_entries_without_user_info_skipped(self):
        summaries = parse_index({
            "a1b2": entry("b2", "Bob", EPOCH),
            "broken": {"date": EPOCH, "lastMessage": {"text": "x"}},
            "garbage": "not a map",
        })

        assert [s.conversation_id for s in summaries] == ["a1b2"]

    def test_missing_date_sorts_as_newest(self):
        summaries = parse_index({
            "a1b2": entry("b2", "Bob", EPOCH),
            "a1c3": entry("c3", "Carol"),
        })

        assert summaries[0].conversation_id == "a1c3"

    def test_preview_and_group_flag(self):
        raw = entry("g-1", "Team", EPOCH, text="hi")
        raw["userInfo"]["isGroup"] = True

        summary = parse_index({"g-1": raw})[0]

        assert summary.preview == "hi"
        assert summary.peer.is_group is True

    def test_empty_document(self):
        assert parse_index(None) == []
        assert parse_index({}) == []


class TestAggregator:

    @pytest.mark.asyncio
    async def test_follows_own_index(self, store, writer):
        changes = []
        aggregator = aggregator_for(store, ALICE, on_change=changes.append)

        async with aggregator:
            assert aggregator.conversations == []
            await writer.open_direct("a1b2", peer_of(ALICE), peer_of(BOB))

            assert [s.conversation_id for s in aggregator.conversations] == ["a1b2"]
            assert aggregator.conversations[0].peer.display_name == "Bob"

        assert len(changes) == 2
        assert store.listener_count == 0
        assert aggregator.conversations == []

    @pytest.mark.asyncio
    async def test_filter_by_name(self, store, writer):
        await writer.open_direct("a1b2", peer_of(ALICE), peer_of(BOB))
        await writer.open_direct("a1c3", peer_of(ALICE), peer_of(CAROL))

        async with aggregator_for(store, ALICE) as aggregator:
            assert [s.peer.id for s in aggregator.filter("car")] == ["c3"]
            assert len(aggregator.filter("")) == 2
            assert aggregator.filter("zed") == []

    @pytest.mark.asyncio
    async def test_reopen_replaces_subscription(self, store):
        aggregator = aggregator_for(store, ALICE)

        await aggregator.open()
        await aggregator.open()

        assert store.listener_count == 1
        await aggregator.close()
        assert store.listener_count == 0

    @pytest.mark.asyncio
    async def test_search_delegates_to_directory(self, store):
        await seed_user(store, BOB)

        found = await aggregator_for(store, ALICE).search("bo")

        assert found.id == "b2"


class TestStartConversation:

    @pytest.mark.asyncio
    async def test_first_message_reaches_both_lists(self, store, alice_composer):
        await seed_user(store, ALICE)
        await seed_user(store, BOB)
        alice_index = aggregator_for(store, ALICE)
        bob_index = aggregator_for(store, BOB)
        await alice_index.open()
        await bob_index.open()

        bob = await alice_index.search("bo")
        conversation_id = await alice_index.start_conversation(bob)
        state = ConversationSelection(session_for(ALICE)).select(bob)
        await alice_composer.send(state, OutgoingMessage(text="hola"))

        assert conversation_id == "a1b2"
        assert (await store.get("chats/a1b2")).exists
        assert len(await store.query("chats/a1b2/messages")) == 1

        [mine] = alice_index.conversations
        [theirs] = bob_index.conversations
        assert mine.peer.id == "b2"
        assert theirs.peer.id == "a1"
        assert theirs.peer.display_name == "Alice"
        assert mine.preview == theirs.preview == "hola"

        await alice_index.close()
        await bob_index.close()

    @pytest.mark.asyncio
    async def test_either_side_gets_same_id(self, store):
        from_alice = await aggregator_for(store, ALICE).start_conversation(peer_of(BOB))
        from_bob = await aggregator_for(store, BOB).start_conversation(peer_of(ALICE))

        assert from_alice == from_bob == "a1b2"

    @pytest.mark.asyncio
    async def test_restart_keeps_conversation_document(self, store):
        aggregator = aggregator_for(store, ALICE)
        await aggregator.start_conversation(peer_of(BOB))
        created = (await store.get("chats/a1b2")).data["createdAt"]

        await aggregator.start_conversation(peer_of(BOB))

        assert (await store.get("chats/a1b2")).data["createdAt"] == created

    @pytest.mark.asyncio
    async def test_probe_failure_retried_once(self, clock):
        store = FlakyProbeStore(failures=1, clock=clock)

        conversation_id = await aggregator_for(store, ALICE).start_conversation(peer_of(BOB))

        assert conversation_id == "a1b2"
        assert store.probes == 2
        assert "a1b2" in (await store.get("userChats/a1")).data
        assert "a1b2" in (await store.get("userChats/b2")).data

    @pytest.mark.asyncio
    async def test_second_failure_is_logged_not_raised(self, clock):
        store = FlakyProbeStore(failures=2, clock=clock)

        conversation_id = await aggregator_for(store, ALICE).start_conversation(peer_of(BOB))

        assert conversation_id == "a1b2"
        assert store.probes == 2
        # Indexes were created empty before the retry
        assert (await store.get("userChats/a1")).data == {}
        assert (await store.get("userChats/b2")).data == {}
