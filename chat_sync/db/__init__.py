from chat_sync.db.store import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    Subscription,
)

__all__ = ["SERVER_TIMESTAMP", "DocumentSnapshot", "DocumentStore", "Subscription"]
