from chat_sync.models.user import Identity, UserProfile
from chat_sync.models.conversation import ConversationSummary, IndexEntry, LastMessage, PeerInfo
from chat_sync.models.message import ChatMessage, ReplyRef

__all__ = [
    "Identity",
    "UserProfile",
    "ConversationSummary",
    "IndexEntry",
    "LastMessage",
    "PeerInfo",
    "ChatMessage",
    "ReplyRef",
]
