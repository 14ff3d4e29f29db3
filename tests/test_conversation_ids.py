"""Tests for conversation identity resolution."""

import itertools

import pytest

from chat_sync.models.conversation import PeerInfo
from chat_sync.services.conversation_ids import (
    direct_conversation_id,
    index_path,
    message_path,
    resolve_conversation_id,
)

USER_IDS = ["a1", "b2", "Zed", "zz9", "0abc", "uid-Ünï", "b"]


class TestDirectConversationId:

    @pytest.mark.parametrize("user_a,user_b", list(itertools.combinations(USER_IDS, 2)))
    def test_commutative(self, user_a, user_b):
        assert direct_conversation_id(user_a, user_b) == direct_conversation_id(user_b, user_a)

    def test_smaller_id_first(self):
        assert direct_conversation_id("b2", "a1") == "a1b2"
        assert direct_conversation_id("a1", "b2") == "a1b2"

    def test_lexicographic_not_numeric(self):
        # "10" < "9" as strings
        assert direct_conversation_id("9", "10") == "109"


class TestResolveConversationId:

    def test_two_party_from_either_side(self):
        alice = PeerInfo(id="a1", display_name="Alice")
        bob = PeerInfo(id="b2", display_name="Bob")

        assert resolve_conversation_id("a1", bob) == "a1b2"
        assert resolve_conversation_id("b2", alice) == "a1b2"

    @pytest.mark.parametrize("caller", ["a1", "b2", "zz9"])
    def test_group_id_returned_unchanged(self, caller):
        group = PeerInfo(id="5f0c-group", display_name="Team", is_group=True, admin_id="a1")
        assert resolve_conversation_id(caller, group) == "5f0c-group"


def test_store_paths():
    assert message_path("a1b2", "m1") == "chats/a1b2/messages/m1"
    assert index_path("a1") == "userChats/a1"
