"""Document storage helpers: TTL cache, store interface and micro-batcher."""

from .backend import (
    BatchCommitError,
    Document,
    DocumentStore,
    Filter,
    InMemoryDocumentStore,
    OrderBy,
    QuerySpec,
    StorageError,
)
from .batcher import BatchedOperations, BatchPerformanceMonitor, Page, QueryBatcher
from .cache import MemoryCache

__all__ = [
    "BatchCommitError",
    "BatchPerformanceMonitor",
    "BatchedOperations",
    "Document",
    "DocumentStore",
    "Filter",
    "InMemoryDocumentStore",
    "MemoryCache",
    "OrderBy",
    "Page",
    "QueryBatcher",
    "QuerySpec",
    "StorageError",
]
