"""
Conversation identity resolution.

Two-party conversations need no coordination: both participants derive the
same key by concatenating their ids smaller-first. Groups carry an opaque id
assigned once at creation and it is used unchanged.
"""

from typing import Union

from chat_sync.models.conversation import PeerInfo
from chat_sync.models.user import Identity, UserProfile

Target = Union[PeerInfo, UserProfile, Identity]


def direct_conversation_id(user_a: str, user_b: str) -> str:
    """Commutative key for a two-party conversation."""
    if user_a <= user_b:
        return user_a + user_b
    return user_b + user_a


def resolve_conversation_id(current_user_id: str, target: Target) -> str:
    """
    Map the current user and a target to the conversation key.

    Args:
        current_user_id: Id of the signed-in user
        target: The peer or group being opened

    Returns:
        The group's own id for groups, otherwise the direct conversation key
    """
    if getattr(target, "is_group", False):
        return target.id
    return direct_conversation_id(current_user_id, target.id)


def message_log_path(conversation_id: str) -> str:
    return f"chats/{conversation_id}/messages"


def message_path(conversation_id: str, message_id: str) -> str:
    return f"{message_log_path(conversation_id)}/{message_id}"


def conversation_path(conversation_id: str) -> str:
    return f"chats/{conversation_id}"


def index_path(user_id: str) -> str:
    return f"userChats/{user_id}"


def user_path(user_id: str) -> str:
    return f"users/{user_id}"
