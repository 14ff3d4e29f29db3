"""
In-process document store.

Keeps documents in a dict keyed by full path and delivers listener
snapshots synchronously from inside the writing coroutine, so a write has
reached every listener by the time it returns. Used for local runs and
tests; behaves like the realtime backend with respect to merge semantics,
missing-document updates and ordered snapshots.
"""

import copy
import itertools
from typing import Any, Callable, Dict, List, Optional

from chat_sync.core import metrics
from chat_sync.core.exceptions import DocumentNotFoundError
from chat_sync.core.logging_config import get_logger
from chat_sync.db.store import (
    DocumentSnapshot,
    DocumentStore,
    RangeQuery,
    Subscription,
    _Watch,
    apply_field_paths,
    deep_merge,
    invoke_callback,
    normalize_collection_path,
    resolve_server_timestamps,
    split_document_path,
    utcnow,
)

logger = get_logger(__name__)


def _sort_key(value: Any):
    # Mixed types never share a collection in practice; group by type name so
    # comparisons stay total.
    return (type(value).__name__, value)


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed DocumentStore with synchronous snapshot delivery."""

    backend = "memory"

    def __init__(self, clock: Optional[Callable] = None):
        self._clock = clock or utcnow
        self._docs: Dict[str, dict] = {}
        self._created: Dict[str, int] = {}
        self._watches: Dict[int, _Watch] = {}
        self._seq = itertools.count()
        self._watch_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, path: str) -> DocumentSnapshot:
        split_document_path(path)
        self._count("get")
        return self._snapshot(path)

    async def query(self, collection: str, query: Optional[RangeQuery] = None) -> List[DocumentSnapshot]:
        self._count("query")
        return self._run_query(normalize_collection_path(collection), query or RangeQuery())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set(self, path: str, data: dict, merge: bool = False) -> None:
        split_document_path(path)
        data = resolve_server_timestamps(copy.deepcopy(data), self._clock())

        existing = self._docs.get(path)
        if merge and existing is not None:
            deep_merge(existing, data)
        else:
            self._store(path, data)

        self._count("set")
        await self._notify(path)

    async def update(self, path: str, fields: dict) -> None:
        split_document_path(path)
        existing = self._docs.get(path)
        if existing is None:
            self._count("update", status="not_found")
            raise DocumentNotFoundError(f"No document to update: {path}")

        fields = resolve_server_timestamps(copy.deepcopy(fields), self._clock())
        apply_field_paths(existing, fields)

        self._count("update")
        await self._notify(path)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def watch_document(self, path: str, callback) -> Subscription:
        split_document_path(path)
        watch = _Watch(kind="document", path=path, callback=callback)
        subscription = self._register(watch)
        await self._deliver(watch)
        return subscription

    async def watch_collection(self, collection: str, callback, query: Optional[RangeQuery] = None) -> Subscription:
        collection = normalize_collection_path(collection)
        watch = _Watch(kind="collection", path=collection, callback=callback, query=query or RangeQuery())
        subscription = self._register(watch)
        await self._deliver(watch)
        return subscription

    @property
    def listener_count(self) -> int:
        return len(self._watches)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _store(self, path: str, data: dict) -> None:
        self._docs[path] = data
        self._created.setdefault(path, next(self._seq))

    def _snapshot(self, path: str) -> DocumentSnapshot:
        data = self._docs.get(path)
        return DocumentSnapshot(path=path, data=copy.deepcopy(data) if data is not None else None)

    def _run_query(self, collection: str, query: RangeQuery) -> List[DocumentSnapshot]:
        prefix = collection + "/"
        paths = [
            p for p in self._docs
            if p.startswith(prefix) and "/" not in p[len(prefix):]
        ]

        if query.field is not None:
            def in_range(p: str) -> bool:
                data = self._docs[p]
                if query.field not in data:
                    return False
                value = data[query.field]
                if query.start is not None and value < query.start:
                    return False
                if query.end is not None and not value < query.end:
                    return False
                return True
            paths = [p for p in paths if in_range(p)]

        # Creation order is the tiebreak
        paths.sort(key=lambda p: self._created[p])
        if query.order_by is not None:
            paths = [p for p in paths if self._docs[p].get(query.order_by) is not None]
            paths.sort(
                key=lambda p: _sort_key(self._docs[p][query.order_by]),
                reverse=query.descending,
            )

        if query.limit is not None:
            paths = paths[:query.limit]

        return [self._snapshot(p) for p in paths]

    def _register(self, watch: _Watch) -> Subscription:
        watch_id = next(self._watch_ids)
        self._watches[watch_id] = watch

        def cancel() -> None:
            self._watches.pop(watch_id, None)

        return Subscription(kind=watch.kind, target=watch.path, cancel=cancel)

    async def _notify(self, path: str) -> None:
        parent = path.rsplit("/", 1)[0]
        for watch_id, watch in list(self._watches.items()):
            if watch_id not in self._watches:
                continue  # cancelled by an earlier listener in this round
            if watch.kind == "document" and watch.path == path:
                await self._deliver(watch)
            elif watch.kind == "collection" and watch.path == parent:
                await self._deliver(watch)

    async def _deliver(self, watch: _Watch) -> None:
        if watch.kind == "document":
            payload = self._snapshot(watch.path)
        else:
            payload = self._run_query(watch.path, watch.query)

        try:
            await invoke_callback(watch.callback, payload)
        except Exception as e:
            # A failing listener must not fail the write that triggered it
            logger.error(
                "listener_callback_failed",
                kind=watch.kind,
                target=watch.path,
                error=str(e),
                exc_info=True,
            )

    def _count(self, operation: str, status: str = "success") -> None:
        metrics.store_operations_total.labels(
            backend=self.backend,
            operation=operation,
            status=status,
        ).inc()
