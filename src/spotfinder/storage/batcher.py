"""Micro-batching of document store operations with cursor pagination.

Operations queue up on one shared list. The queue is flushed when it reaches
``batch_size`` or ``batch_delay`` seconds after the first queued operation,
whichever happens first. A flush takes the whole queue in one step (no await
in between), runs reads concurrently, then commits writes, updates and
deletes in atomic chunks of at most ``batch_size``. A failed commit rejects
exactly the operations of its chunk. A read result is cached only if no commit
to its collection landed while it was in flight.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, AsyncIterator, Deque, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .backend import BatchCommitError, Cursor, Document, DocumentStore, Filter, OrderBy, QuerySpec, WriteOp
from .cache import MemoryCache

logger = logging.getLogger(__name__)

BATCH_SIZE = 500
BATCH_DELAY = 0.05
READ_TTL = 300.0
DEFAULT_PAGE_SIZE = 25

READ = "read"
WRITE = "write"
UPDATE = "update"
DELETE = "delete"

_COMMIT_KIND = {WRITE: "set", UPDATE: "update", DELETE: "delete"}
_MISS = object()


@dataclass
class BatchOperation:
    kind: str
    collection: str
    future: "asyncio.Future[Any]"
    doc_id: Optional[str] = None
    data: Optional[Mapping[str, Any]] = None
    query: Optional[QuerySpec] = None
    cache_key: Optional[str] = None
    generation: int = 0


@dataclass(frozen=True)
class Page:
    data: List[Document]
    has_next: bool
    has_previous: bool
    first_cursor: Optional[Cursor] = None
    last_cursor: Optional[Cursor] = None


class BatchPerformanceMonitor:
    """Rolling timing/size figures over the last ``window`` flushes."""

    def __init__(self, window: int = 100) -> None:
        self._times: Deque[float] = deque(maxlen=window)
        self._sizes: Deque[int] = deque(maxlen=window)

    def record(self, duration_ms: float, size: int) -> None:
        self._times.append(float(duration_ms))
        self._sizes.append(int(size))

    def stats(self) -> Dict[str, Any]:
        if not self._times:
            return {"average_batch_time": 0, "average_batch_size": 0, "total_batches": 0, "efficiency": 0.0}
        avg_time = sum(self._times) / len(self._times)
        avg_size = sum(self._sizes) / len(self._sizes)
        return {
            "average_batch_time": round(avg_time),
            "average_batch_size": round(avg_size),
            "total_batches": len(self._times),
            # operations per millisecond
            "efficiency": round(avg_size / max(avg_time, 1.0), 3),
        }


def _chunks(items: Sequence[BatchOperation], size: int) -> List[Sequence[BatchOperation]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def _resolve(op: BatchOperation, value: Any) -> None:
    if not op.future.done():
        op.future.set_result(value)


def _reject(op: BatchOperation, exc: BaseException) -> None:
    if not op.future.done():
        op.future.set_exception(exc)


class QueryBatcher:
    def __init__(
        self,
        store: DocumentStore,
        *,
        batch_size: int = BATCH_SIZE,
        batch_delay: float = BATCH_DELAY,
        cache: Optional[MemoryCache] = None,
        read_ttl: float = READ_TTL,
        monitor: Optional[BatchPerformanceMonitor] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.store = store
        self.batch_size = batch_size
        self.batch_delay = max(0.0, float(batch_delay))
        self.cache = cache if cache is not None else MemoryCache(default_ttl=read_ttl)
        self.read_ttl = read_ttl
        self.monitor = monitor or BatchPerformanceMonitor()
        self._pending: List[BatchOperation] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set["asyncio.Task[None]"] = set()
        # bumped per collection on every successful commit
        self._generations: Dict[str, int] = {}

    # -- queueing -----------------------------------------------------------

    @staticmethod
    def cache_key(collection: str, doc_id: Optional[str] = None, query: Optional[QuerySpec] = None) -> str:
        shape = query.shape_key() if query is not None else "{}"
        return f"batch:{collection}:{doc_id or 'query'}:{shape}"

    def _enqueue(self, op: BatchOperation) -> "asyncio.Future[Any]":
        self._pending.append(op)
        if len(self._pending) >= self.batch_size:
            self._cancel_timer()
            self._launch(self._take())
        elif self._timer is None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.batch_delay, self._on_timer)
        return op.future

    def _take(self) -> List[BatchOperation]:
        ops, self._pending = self._pending, []
        return ops

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        ops = self._take()
        if ops:
            self._launch(ops)

    def _launch(self, ops: List[BatchOperation]) -> None:
        task = asyncio.get_running_loop().create_task(self._execute(ops))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _new_op(self, kind: str, collection: str, **kwargs: Any) -> BatchOperation:
        future = asyncio.get_running_loop().create_future()
        return BatchOperation(kind=kind, collection=collection, future=future, **kwargs)

    # -- public operations --------------------------------------------------

    async def batch_read(
        self,
        collection: str,
        doc_id: Optional[str] = None,
        query: Optional[QuerySpec] = None,
    ) -> Union[Optional[Document], List[Document]]:
        """Read one document, a query result, or a whole collection.

        Served from the read cache when a live entry exists.
        """

        key = self.cache_key(collection, doc_id, query)
        cached = self.cache.get(key, _MISS)
        if cached is not _MISS:
            return cached
        op = self._new_op(
            READ,
            collection,
            doc_id=doc_id,
            query=query,
            cache_key=key,
            generation=self._generations.get(collection, 0),
        )
        return await self._enqueue(op)

    async def batch_write(
        self,
        collection: str,
        data: Mapping[str, Any],
        doc_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        op = self._new_op(WRITE, collection, doc_id=doc_id or uuid.uuid4().hex, data=data)
        return await self._enqueue(op)

    async def batch_update(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        op = self._new_op(UPDATE, collection, doc_id=doc_id, data=data)
        return await self._enqueue(op)

    async def batch_delete(self, collection: str, doc_id: str) -> Dict[str, Any]:
        op = self._new_op(DELETE, collection, doc_id=doc_id)
        return await self._enqueue(op)

    async def flush(self) -> None:
        """Run everything queued now and wait for in-flight flushes."""

        self._cancel_timer()
        ops = self._take()
        if ops:
            await self._execute(ops)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.flush()

    def stats(self) -> Dict[str, Any]:
        return {
            "pending": len(self._pending),
            "scheduled": self._timer is not None,
            "cache": self.cache.stats(),
            **self.monitor.stats(),
        }

    # -- pagination -----------------------------------------------------------

    async def paginated_read(
        self,
        collection: str,
        *,
        limit: int = DEFAULT_PAGE_SIZE,
        order_by: Optional[OrderBy] = None,
        where: Iterable[Filter] = (),
        start_after: Optional[Union[Document, Cursor]] = None,
    ) -> Page:
        """Fetch one page; ``has_next`` comes from reading one extra row."""

        if limit < 1:
            raise ValueError("Page limit must be at least 1")
        spec = QuerySpec(
            where=tuple(where),
            order_by=order_by or OrderBy(),
            limit=limit + 1,
            start_after=start_after,
        )
        rows = list(await self.batch_read(collection, query=spec) or [])
        has_next = len(rows) > limit
        data = rows[:limit]
        return Page(
            data=data,
            has_next=has_next,
            has_previous=start_after is not None,
            first_cursor=data[0].cursor if data else None,
            last_cursor=data[-1].cursor if data else None,
        )

    async def iterate_pages(
        self,
        collection: str,
        *,
        limit: int = DEFAULT_PAGE_SIZE,
        order_by: Optional[OrderBy] = None,
        where: Iterable[Filter] = (),
    ) -> AsyncIterator[Page]:
        filters = tuple(where)
        cursor: Optional[Cursor] = None
        while True:
            page = await self.paginated_read(
                collection,
                limit=limit,
                order_by=order_by,
                where=filters,
                start_after=cursor,
            )
            yield page
            if not page.has_next or page.last_cursor is None:
                return
            cursor = page.last_cursor

    # -- execution ------------------------------------------------------------

    async def _execute(self, ops: List[BatchOperation]) -> None:
        started = time.perf_counter()
        logger.debug("Executing batch of %s store operations", len(ops))
        reads = [op for op in ops if op.kind == READ]
        if reads:
            await asyncio.gather(*(self._read(op) for op in reads))
        for kind in (WRITE, UPDATE, DELETE):
            group = [op for op in ops if op.kind == kind]
            for chunk in _chunks(group, self.batch_size):
                await self._commit_chunk(kind, chunk)
        self.monitor.record((time.perf_counter() - started) * 1000.0, len(ops))

    async def _read(self, op: BatchOperation) -> None:
        try:
            if op.doc_id:
                result: Any = await self.store.get(op.collection, op.doc_id)
            elif op.query is not None:
                result = await self.store.query(op.collection, op.query)
            else:
                result = await self.store.list_all(op.collection)
        except Exception as exc:
            logger.warning("Batch read failed for %s: %s", op.collection, exc)
            _reject(op, exc)
            return
        # a commit that landed while this read was in flight makes its result stale
        if op.cache_key and self._generations.get(op.collection, 0) == op.generation:
            self.cache.set(op.cache_key, result, self.read_ttl)
        _resolve(op, result)

    async def _commit_chunk(self, kind: str, chunk: Sequence[BatchOperation]) -> None:
        accepted: List[BatchOperation] = []
        writes: List[WriteOp] = []
        for op in chunk:
            if kind != DELETE and not isinstance(op.data, Mapping):
                _reject(op, BatchCommitError(f"{kind} for {op.collection}/{op.doc_id} needs a mapping"))
                continue
            accepted.append(op)
            writes.append(WriteOp(_COMMIT_KIND[kind], op.collection, str(op.doc_id), dict(op.data or {})))
        if not writes:
            return
        try:
            await self.store.commit(writes)
        except Exception as exc:
            logger.warning("Batch %s commit of %s operations failed: %s", kind, len(writes), exc)
            error = exc if isinstance(exc, BatchCommitError) else BatchCommitError(str(exc))
            if error is not exc:
                error.__cause__ = exc
            for op in accepted:
                _reject(op, error)
            return
        for collection in {op.collection for op in accepted}:
            self._generations[collection] = self._generations.get(collection, 0) + 1
            self.cache.delete_prefix(f"batch:{collection}:")
        for op in accepted:
            _resolve(op, {"success": True, "id": op.doc_id})


class BatchedOperations:
    """Bulk helpers that fan out over one :class:`QueryBatcher`."""

    def __init__(self, batcher: QueryBatcher) -> None:
        self.batcher = batcher

    async def get_documents(self, collection: str, doc_ids: Iterable[str]) -> List[Optional[Document]]:
        return list(await asyncio.gather(*(self.batcher.batch_read(collection, doc_id) for doc_id in doc_ids)))

    async def run_queries(self, collection: str, queries: Iterable[QuerySpec]) -> List[List[Document]]:
        return list(await asyncio.gather(*(self.batcher.batch_read(collection, query=q) for q in queries)))

    async def create_documents(self, collection: str, documents: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        return list(await asyncio.gather(*(self.batcher.batch_write(collection, doc) for doc in documents)))

    async def update_documents(
        self,
        collection: str,
        updates: Iterable[Tuple[str, Mapping[str, Any]]],
    ) -> List[Dict[str, Any]]:
        return list(
            await asyncio.gather(*(self.batcher.batch_update(collection, doc_id, data) for doc_id, data in updates))
        )


__all__ = [
    "BATCH_DELAY",
    "BATCH_SIZE",
    "READ_TTL",
    "BatchOperation",
    "BatchPerformanceMonitor",
    "BatchedOperations",
    "Page",
    "QueryBatcher",
]
