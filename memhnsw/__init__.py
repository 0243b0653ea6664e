"""
memhnsw - Incremental HNSW Vector Index

An approximate nearest-neighbor index for embedding retrieval that can be
built incrementally, queried at any point, exported to a snapshot and
optionally backed by a durable vector store.
"""

__version__ = "0.1.0"

from memhnsw.index import HNSW
from memhnsw.config import (
    HNSWConfig,
    get_default_config,
    get_normalized_config,
)
from memhnsw.errors import (
    MemHNSWError,
    DimensionMismatchError,
    DuplicateKeyError,
    EmptyIndexError,
    InvalidVectorError,
    BackingStoreError,
    PartialBatchError,
    UnreachableNodeError,
    UnreachableNodeWarning,
    SnapshotError,
)
from memhnsw.feed import LoadSummary, StreamLoader
from memhnsw.snapshot import IndexSnapshot
from memhnsw.vector_store import (
    InMemoryVectorStore,
    SQLiteVectorStore,
    VectorBackingStore,
)

__all__ = [
    "HNSW",
    "HNSWConfig",
    "get_default_config",
    "get_normalized_config",
    "MemHNSWError",
    "DimensionMismatchError",
    "DuplicateKeyError",
    "EmptyIndexError",
    "InvalidVectorError",
    "BackingStoreError",
    "PartialBatchError",
    "UnreachableNodeError",
    "UnreachableNodeWarning",
    "SnapshotError",
    "LoadSummary",
    "StreamLoader",
    "IndexSnapshot",
    "InMemoryVectorStore",
    "SQLiteVectorStore",
    "VectorBackingStore",
]
