"""
MongoDB-backed document store (motor).

Every logical collection path maps to one MongoDB collection named after
its last segment. Documents are keyed by their full path and carry a
``_parent`` field holding the collection path, so nested collections such
as chats/{cid}/messages share one physical collection:

    {"_id": "chats/a1b2/messages/9f..", "_parent": "chats/a1b2/messages", ...}

Live snapshots use change streams, which require a replica set.
"""

import asyncio
import re
import time
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from chat_sync.config import settings
from chat_sync.core import metrics
from chat_sync.core.exceptions import DocumentNotFoundError, StoreError
from chat_sync.core.logging_config import PerformanceLogger, get_logger
from chat_sync.db.store import (
    DocumentSnapshot,
    DocumentStore,
    RangeQuery,
    Subscription,
    invoke_callback,
    normalize_collection_path,
    resolve_server_timestamps,
    split_document_path,
    utcnow,
)

logger = get_logger(__name__)

_RESERVED = ("_id", "_parent")


def _flatten(data: dict, prefix: str = "") -> dict:
    """Turn nested maps into dotted $set keys so merges stay deep."""
    flat = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict) and value:
            flat.update(_flatten(value, dotted + "."))
        else:
            flat[dotted] = value
    return flat


def _strip(document: Optional[dict]) -> Optional[dict]:
    if document is None:
        return None
    return {k: v for k, v in document.items() if k not in _RESERVED}


class MongoDocumentStore(DocumentStore):
    """DocumentStore over a motor database."""

    backend = "mongodb"

    def __init__(self, client: AsyncIOMotorClient, database_name: str):
        self.client = client
        self.db = client[database_name]
        self._tasks: set = set()

    def _collection(self, collection_path: str):
        return self.db[collection_path.rsplit("/", 1)[-1]]

    async def _timed(self, operation: str, collection_path: str, coro):
        start_time = time.time()
        status = "success"
        try:
            with PerformanceLogger(f"mongodb_{operation}", logger, collection=collection_path):
                return await coro
        except PyMongoError as e:
            status = "error"
            raise StoreError(f"{operation} failed on {collection_path}: {e}") from e
        finally:
            metrics.store_operations_total.labels(
                backend=self.backend, operation=operation, status=status
            ).inc()
            metrics.store_operation_duration_seconds.labels(
                backend=self.backend, operation=operation
            ).observe(time.time() - start_time)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, path: str) -> DocumentSnapshot:
        parent, _ = split_document_path(path)
        document = await self._timed("get", parent, self._collection(parent).find_one({"_id": path}))
        return DocumentSnapshot(path=path, data=_strip(document))

    async def query(self, collection: str, query: Optional[RangeQuery] = None) -> List[DocumentSnapshot]:
        collection = normalize_collection_path(collection)
        return await self._timed("query", collection, self._run_query(collection, query or RangeQuery()))

    async def _run_query(self, collection: str, query: RangeQuery) -> List[DocumentSnapshot]:
        criteria = {"_parent": collection}
        if query.field is not None:
            bounds = {"$exists": True}
            if query.start is not None:
                bounds["$gte"] = query.start
            if query.end is not None:
                bounds["$lt"] = query.end
            criteria[query.field] = bounds
        if query.order_by is not None:
            criteria.setdefault(query.order_by, {})
            if isinstance(criteria[query.order_by], dict):
                criteria[query.order_by]["$ne"] = None

        cursor = self._collection(collection).find(criteria)
        if query.order_by is not None:
            cursor = cursor.sort([(query.order_by, -1 if query.descending else 1), ("_id", 1)])
        if query.limit is not None:
            cursor = cursor.limit(query.limit)

        documents = await cursor.to_list(length=query.limit)
        return [DocumentSnapshot(path=d["_id"], data=_strip(d)) for d in documents]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set(self, path: str, data: dict, merge: bool = False) -> None:
        parent, _ = split_document_path(path)
        data = resolve_server_timestamps(data, utcnow())
        collection = self._collection(parent)

        if merge:
            update = {"$setOnInsert": {"_parent": parent}}
            flat = _flatten(data)
            if flat:
                update["$set"] = flat
            await self._timed("set_merge", parent, collection.update_one({"_id": path}, update, upsert=True))
        else:
            document = {"_id": path, "_parent": parent, **data}
            await self._timed("set", parent, collection.replace_one({"_id": path}, document, upsert=True))

    async def update(self, path: str, fields: dict) -> None:
        parent, _ = split_document_path(path)
        fields = resolve_server_timestamps(fields, utcnow())
        result = await self._timed(
            "update", parent, self._collection(parent).update_one({"_id": path}, {"$set": fields})
        )
        if result.matched_count == 0:
            raise DocumentNotFoundError(f"No document to update: {path}")

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def watch_document(self, path: str, callback) -> Subscription:
        parent, _ = split_document_path(path)

        async def deliver() -> None:
            await invoke_callback(callback, await self.get(path))

        return self._spawn_watch("document", path, parent, {"documentKey._id": path}, deliver)

    async def watch_collection(self, collection: str, callback, query: Optional[RangeQuery] = None) -> Subscription:
        collection = normalize_collection_path(collection)
        query = query or RangeQuery()
        match = {"documentKey._id": {"$regex": f"^{re.escape(collection)}/[^/]+$"}}

        async def deliver() -> None:
            await invoke_callback(callback, await self.query(collection, query))

        return self._spawn_watch("collection", collection, collection, match, deliver)

    def _spawn_watch(self, kind: str, target: str, collection_path: str, match: dict, deliver) -> Subscription:
        task = asyncio.create_task(self._watch_loop(kind, target, collection_path, match, deliver))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        async def cancel() -> None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        return Subscription(kind=kind, target=target, cancel=cancel)

    async def _watch_loop(self, kind: str, target: str, collection_path: str, match: dict, deliver) -> None:
        collection = self._collection(collection_path)
        try:
            # Open the stream before the initial read so no change falls between them
            async with collection.watch([{"$match": match}]) as stream:
                await deliver()
                async for _change in stream:
                    await deliver()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "change_stream_terminated",
                kind=kind,
                target=target,
                error=str(e),
                exc_info=True,
            )

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self.client.close()
        logger.info("mongodb_connection_closed")


async def init_store() -> MongoDocumentStore:
    """
    Connect to MongoDB and prepare the collections.

    Connection pool configuration:
    - maxPoolSize=50: Maximum number of connections
    - minPoolSize=5: Pre-allocated connections (reduces latency)
    - serverSelectionTimeoutMS=5000: Fail fast if MongoDB is down
    - tz_aware=True: timestamps come back as aware UTC datetimes
    """
    try:
        client = AsyncIOMotorClient(
            settings.MONGODB_URL,
            maxPoolSize=50,
            minPoolSize=5,
            maxIdleTimeMS=45000,
            serverSelectionTimeoutMS=5000,
            retryWrites=True,
            retryReads=True,
            tz_aware=True,
        )

        await client.admin.command('ping')
        logger.info("mongodb_connected", database=settings.DATABASE_NAME)

        db = client[settings.DATABASE_NAME]
        # Ordered message log per conversation
        await db["messages"].create_index([("_parent", 1), ("date", 1)])
        # Prefix search over the lowercase name projection
        await db["users"].create_index([("_parent", 1), ("displayNameLower", 1)])

        logger.info("mongodb_indexes_ready")
        return MongoDocumentStore(client, settings.DATABASE_NAME)

    except Exception as e:
        logger.error("mongodb_connection_failed", error=str(e))
        raise
