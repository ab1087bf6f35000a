"""Document store interface used by the micro-batcher, plus an in-memory store.

The store is deliberately narrow: point reads, filtered/ordered/cursored
queries, and an atomic multi-write commit. Any document database offering
those can sit behind :class:`DocumentStore`.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from ..workflows.models import SpotfinderError

logger = logging.getLogger(__name__)

DOC_ID_FIELD = "__id__"
ASC = "asc"
DESC = "desc"

Cursor = Tuple[Any, str]

_OPS = ("==", "!=", "<", "<=", ">", ">=", "in", "array-contains")


class StorageError(SpotfinderError):
    """Raised by a document store."""


class BatchCommitError(StorageError):
    """Raised when an atomic commit is rejected; no write of it was applied."""


@dataclass(frozen=True)
class Document:
    id: str
    data: Dict[str, Any]
    cursor: Optional[Cursor] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.data}


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPS:
            raise ValueError(f"Unsupported filter operator: {self.op!r}")

    def matches(self, doc_id: str, data: Mapping[str, Any]) -> bool:
        actual = doc_id if self.field == DOC_ID_FIELD else data.get(self.field)
        if self.op == "array-contains":
            return isinstance(actual, (list, tuple)) and self.value in actual
        if self.op == "in":
            return actual in self.value
        if self.op == "==":
            return actual == self.value
        if self.op == "!=":
            return actual is not None and actual != self.value
        if actual is None:
            return False
        try:
            if self.op == "<":
                return actual < self.value
            if self.op == "<=":
                return actual <= self.value
            if self.op == ">":
                return actual > self.value
            return actual >= self.value
        except TypeError:
            return False


@dataclass(frozen=True)
class OrderBy:
    field: str = DOC_ID_FIELD
    direction: str = ASC

    def __post_init__(self) -> None:
        if self.direction not in (ASC, DESC):
            raise ValueError(f"Unsupported order direction: {self.direction!r}")


@dataclass(frozen=True)
class QuerySpec:
    where: Tuple[Filter, ...] = ()
    order_by: Optional[OrderBy] = None
    limit: Optional[int] = None
    start_after: Optional[Union[Document, Cursor]] = None
    end_before: Optional[Union[Document, Cursor]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "where", tuple(self.where or ()))
        if self.limit is not None and self.limit < 0:
            raise ValueError("Query limit must be non-negative")

    def shape_key(self) -> str:
        """Stable string identifying the query, used as a cache key."""

        order = self.order_by
        payload = {
            "where": [[f.field, f.op, f.value] for f in self.where],
            "order": [order.field, order.direction] if order else None,
            "limit": self.limit,
            "start_after": _cursor_of(self.start_after),
            "end_before": _cursor_of(self.end_before),
        }
        return json.dumps(payload, sort_keys=True, default=str)


@dataclass(frozen=True)
class WriteOp:
    kind: str  # "set" | "update" | "delete"
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)


class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> Optional[Document]: ...

    async def query(self, collection: str, spec: QuerySpec) -> List[Document]: ...

    async def list_all(self, collection: str) -> List[Document]: ...

    async def commit(self, writes: Sequence[WriteOp]) -> None: ...


def _cursor_of(value: Optional[Union[Document, Cursor]]) -> Optional[Cursor]:
    if value is None:
        return None
    if isinstance(value, Document):
        if value.cursor is None:
            raise ValueError("Document carries no cursor; pass one returned by a query")
        return value.cursor
    order_value, doc_id = value
    return (order_value, str(doc_id))


def _rank(value: Any) -> Tuple[int, Any]:
    # None sorts after every real value.
    return (1, "") if value is None else (0, value)


def _sort_key(cursor: Cursor) -> Tuple[Tuple[int, Any], str]:
    return (_rank(cursor[0]), cursor[1])


class InMemoryDocumentStore:
    """Dict-of-dicts store with Firestore-like query semantics.

    Ordering is by the order field then document id, so cursors are total.
    ``commit`` validates every write against a staged copy and only then
    swaps it in: a commit is all-or-nothing.
    """

    def __init__(self, initial: Optional[Mapping[str, Mapping[str, Mapping[str, Any]]]] = None) -> None:
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for collection, docs in (initial or {}).items():
            self._data[collection] = {str(k): dict(v) for k, v in docs.items()}
        self._fail_next: Optional[str] = None
        self.commit_count = 0
        self.query_count = 0
        self.get_count = 0

    def fail_next_commit(self, message: str = "simulated commit failure") -> None:
        self._fail_next = message

    def snapshot(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._data.get(collection, {}))

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        self.get_count += 1
        data = self._data.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return Document(id=doc_id, data=copy.deepcopy(data), cursor=(doc_id, doc_id))

    async def list_all(self, collection: str) -> List[Document]:
        return await self.query(collection, QuerySpec())

    async def query(self, collection: str, spec: QuerySpec) -> List[Document]:
        self.query_count += 1
        order = spec.order_by or OrderBy()
        rows: List[Tuple[Cursor, str, Dict[str, Any]]] = []
        for doc_id, data in self._data.get(collection, {}).items():
            if not all(f.matches(doc_id, data) for f in spec.where):
                continue
            value = doc_id if order.field == DOC_ID_FIELD else data.get(order.field)
            rows.append(((value, doc_id), doc_id, data))

        descending = order.direction == DESC
        try:
            rows.sort(key=lambda r: _sort_key(r[0]), reverse=descending)
        except TypeError as exc:
            raise StorageError(f"Cannot order {collection} by {order.field!r}: mixed value types") from exc

        start = _cursor_of(spec.start_after)
        if start is not None:
            pivot = _sort_key(start)
            rows = [r for r in rows if (_sort_key(r[0]) < pivot if descending else _sort_key(r[0]) > pivot)]
        end = _cursor_of(spec.end_before)
        if end is not None:
            pivot = _sort_key(end)
            rows = [r for r in rows if (_sort_key(r[0]) > pivot if descending else _sort_key(r[0]) < pivot)]
        if spec.limit is not None:
            rows = rows[: spec.limit]
        return [Document(id=doc_id, data=copy.deepcopy(data), cursor=cursor) for cursor, doc_id, data in rows]

    async def commit(self, writes: Sequence[WriteOp]) -> None:
        self.commit_count += 1
        if self._fail_next is not None:
            message, self._fail_next = self._fail_next, None
            raise BatchCommitError(message)

        staged = {name: dict(docs) for name, docs in self._data.items()}
        for op in writes:
            docs = staged.setdefault(op.collection, {})
            if op.kind == "set":
                docs[op.doc_id] = copy.deepcopy(dict(op.data))
            elif op.kind == "update":
                if op.doc_id not in docs:
                    raise BatchCommitError(f"No document to update: {op.collection}/{op.doc_id}")
                merged = dict(docs[op.doc_id])
                merged.update(copy.deepcopy(dict(op.data)))
                docs[op.doc_id] = merged
            elif op.kind == "delete":
                docs.pop(op.doc_id, None)
            else:
                raise BatchCommitError(f"Unknown write kind: {op.kind!r}")
        self._data = staged
        logger.debug("Committed %s writes", len(writes))


__all__ = [
    "ASC",
    "DESC",
    "DOC_ID_FIELD",
    "BatchCommitError",
    "Document",
    "DocumentStore",
    "Filter",
    "InMemoryDocumentStore",
    "OrderBy",
    "QuerySpec",
    "StorageError",
    "WriteOp",
]
