"""Tests for the conversation selection state machine."""

from datetime import datetime, timezone

import pytest

from chat_sync.core.exceptions import BadRequestError
from chat_sync.models.conversation import PeerInfo
from chat_sync.models.message import ChatMessage
from chat_sync.services.call_room import build_call_room
from chat_sync.services.selection import (
    NULL_CONVERSATION_ID,
    ConversationSelection,
    SelectionMode,
)
from tests.conftest import ALICE, BOB, peer_of, session_for

GROUP = PeerInfo(id="g-123", display_name="Team", is_group=True, admin_id="a1")


def message(sender="b2", text="hola", **extra):
    return ChatMessage(
        id="m1",
        text=text,
        sender_id=sender,
        sender_display_name="Bob",
        date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        **extra,
    )


class TestTransitions:

    def test_initial_state_is_none(self):
        selection = ConversationSelection(session_for(ALICE))

        assert selection.state.mode is SelectionMode.NONE
        assert selection.state.conversation_id == NULL_CONVERSATION_ID

    def test_select_peer_enters_active(self):
        selection = ConversationSelection(session_for(ALICE))

        state = selection.select(peer_of(BOB))

        assert state.mode is SelectionMode.ACTIVE
        assert state.conversation_id == "a1b2"
        assert state.peer.id == "b2"

    def test_select_group_uses_group_id(self):
        selection = ConversationSelection(session_for(BOB))
        assert selection.select(GROUP).conversation_id == "g-123"
        assert selection.state.is_group

    def test_select_none_and_close_return_to_none(self):
        selection = ConversationSelection(session_for(ALICE))
        selection.select(peer_of(BOB))
        assert selection.select(None).mode is SelectionMode.NONE

        selection.select(peer_of(BOB))
        assert selection.close().conversation_id == NULL_CONVERSATION_ID

    def test_feed_marker_enters_feed(self):
        selection = ConversationSelection(session_for(ALICE))

        state = selection.select(PeerInfo(id="feed", display_name="Comunidad"))

        assert state.mode is SelectionMode.FEED
        assert state.conversation_id == NULL_CONVERSATION_ID
        assert selection.open_feed().mode is SelectionMode.FEED

    def test_no_op_without_authenticated_user(self):
        selection = ConversationSelection(session_for(None))

        state = selection.select(peer_of(BOB))

        assert state.mode is SelectionMode.NONE

    def test_listeners_see_each_transition_once(self):
        selection = ConversationSelection(session_for(ALICE))
        seen = []
        selection.add_listener(lambda old, new: seen.append((old.mode, new.mode)))

        selection.select(peer_of(BOB))
        selection.select(peer_of(BOB))  # same state, no transition
        selection.close()

        assert seen == [
            (SelectionMode.NONE, SelectionMode.ACTIVE),
            (SelectionMode.ACTIVE, SelectionMode.NONE),
        ]


class TestReplyDraft:

    def test_start_reply_snapshots_message(self):
        selection = ConversationSelection(session_for(ALICE))
        selection.select(peer_of(BOB))

        reply = selection.start_reply(message())

        assert reply.id == "m1"
        assert reply.text == "hola"
        assert reply.sender_display_name == "Bob"
        assert selection.reply_to == reply

    def test_reply_to_media_uses_placeholder(self):
        selection = ConversationSelection(session_for(ALICE))
        selection.select(peer_of(BOB))

        reply = selection.start_reply(message(text="", audio="https://blobs.test/a"))

        assert reply.text == "🎤 Nota de voz"

    def test_reply_cleared_on_conversation_change(self):
        selection = ConversationSelection(session_for(ALICE))
        selection.select(peer_of(BOB))
        selection.start_reply(message())

        selection.select(GROUP)

        assert selection.reply_to is None

    def test_reply_requires_active_conversation(self):
        selection = ConversationSelection(session_for(ALICE))
        with pytest.raises(ValueError):
            selection.start_reply(message())

    def test_cannot_reply_to_deleted_message(self):
        selection = ConversationSelection(session_for(ALICE))
        selection.select(peer_of(BOB))
        with pytest.raises(ValueError):
            selection.start_reply(message().soft_deleted())


class TestCallRoom:

    def test_room_id_is_conversation_id(self):
        selection = ConversationSelection(session_for(ALICE))
        selection.select(peer_of(BOB))

        room = build_call_room(selection.state, ALICE, base_url="https://chat.test/room/")

        assert room.room_id == "a1b2"
        assert room.user_id == "a1"
        assert room.share_url == "https://chat.test/room/a1b2"

    def test_no_room_outside_active(self):
        selection = ConversationSelection(session_for(ALICE))
        with pytest.raises(BadRequestError):
            build_call_room(selection.state, ALICE)
