"""
Document store interface.

The sync engine only needs a handful of primitives from its realtime store:
point reads, whole/merge writes, dotted partial updates, a half-open range
query over one field, and live snapshot subscriptions on a document or an
ordered collection. Paths are slash separated, alternating collection and
document ids:

    users/{uid}
    userChats/{uid}
    chats/{conversationId}
    chats/{conversationId}/messages/{messageId}
"""

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union

from chat_sync.core import metrics
from chat_sync.core.exceptions import BadRequestError
from chat_sync.core.logging_config import get_logger

logger = get_logger(__name__)


class _ServerTimestamp:
    """Sentinel replaced by the store's clock at write time."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def split_document_path(path: str) -> Tuple[str, str]:
    """Return (collection_path, document_id) for a document path."""
    segments = [s for s in path.split("/") if s]
    if not segments or len(segments) % 2 != 0:
        raise BadRequestError(f"Not a document path: {path!r}")
    return "/".join(segments[:-1]), segments[-1]


def normalize_collection_path(path: str) -> str:
    segments = [s for s in path.split("/") if s]
    if not segments or len(segments) % 2 != 1:
        raise BadRequestError(f"Not a collection path: {path!r}")
    return "/".join(segments)


def resolve_server_timestamps(value: Any, now: datetime) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, dict):
        return {k: resolve_server_timestamps(v, now) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_server_timestamps(v, now) for v in value]
    return value


def deep_merge(target: dict, patch: dict) -> dict:
    """Merge patch into target in place; nested maps merge, everything else replaces."""
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            deep_merge(target[key], value)
        else:
            target[key] = value
    return target


def apply_field_paths(target: dict, fields: dict) -> dict:
    """Apply {'a.b': v} style updates in place, creating intermediate maps."""
    for dotted, value in fields.items():
        parts = dotted.split(".")
        node = target
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
    return target


@dataclass
class DocumentSnapshot:
    """Point-in-time view of one document."""
    path: str
    data: Optional[dict] = None

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def exists(self) -> bool:
        return self.data is not None


@dataclass
class RangeQuery:
    """Half-open [start, end) range over one field, plus ordering and limit."""
    field: Optional[str] = None
    start: Any = None
    end: Any = None
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None


DocumentCallback = Callable[[DocumentSnapshot], Union[None, Awaitable[None]]]
CollectionCallback = Callable[[List[DocumentSnapshot]], Union[None, Awaitable[None]]]


async def invoke_callback(callback: Callable, *args) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class Subscription:
    """
    Handle for a live store listener.

    cancel() is idempotent. Used as an async context manager the listener is
    torn down on every exit path of the owning scope.
    """

    def __init__(self, kind: str, target: str, cancel: Callable[[], Union[None, Awaitable[None]]]):
        self.kind = kind
        self.target = target
        self._cancel = cancel
        self._active = True
        metrics.subscriptions_active.labels(kind=kind).inc()

    @property
    def active(self) -> bool:
        return self._active

    async def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        metrics.subscriptions_active.labels(kind=self.kind).dec()
        await invoke_callback(self._cancel)
        logger.debug("subscription_cancelled", kind=self.kind, target=self.target)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cancel()

    def __repr__(self) -> str:
        state = "active" if self._active else "cancelled"
        return f"<Subscription {self.kind} {self.target} {state}>"


@dataclass
class _Watch:
    kind: str
    path: str
    callback: Callable
    query: RangeQuery = field(default_factory=RangeQuery)


class DocumentStore(ABC):
    """Realtime document store consumed by the sync engine."""

    backend = "abstract"

    @abstractmethod
    async def get(self, path: str) -> DocumentSnapshot:
        """Point read. Missing documents return a snapshot with data=None."""

    @abstractmethod
    async def set(self, path: str, data: dict, merge: bool = False) -> None:
        """Create or overwrite a document; merge=True deep-merges into an existing one."""

    @abstractmethod
    async def update(self, path: str, fields: dict) -> None:
        """
        Partial update with dotted field paths.

        Raises:
            DocumentNotFoundError: the document does not exist
        """

    @abstractmethod
    async def query(self, collection: str, query: Optional[RangeQuery] = None) -> List[DocumentSnapshot]:
        """Documents directly inside collection, filtered/ordered by query."""

    @abstractmethod
    async def watch_document(self, path: str, callback: DocumentCallback) -> Subscription:
        """Deliver a snapshot of path now and after every change to it."""

    @abstractmethod
    async def watch_collection(
        self,
        collection: str,
        callback: CollectionCallback,
        query: Optional[RangeQuery] = None,
    ) -> Subscription:
        """Deliver the full ordered result set now and after every change to the collection."""

    async def close(self) -> None:
        """Release backend resources."""
