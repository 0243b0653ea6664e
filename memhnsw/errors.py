"""
Error types raised by memhnsw.

Every error derives from MemHNSWError so callers (e.g. a streaming loader)
can catch index failures as a group and carry on with the next batch.
The builtin bases are kept so code written against plain ValueError/KeyError
still catches them.
"""


class MemHNSWError(Exception):
    """Base class for all memhnsw errors."""


class DimensionMismatchError(MemHNSWError, ValueError):
    """Vector length disagrees with the index dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension {actual} doesn't match index dimension {expected}"
        )


class InvalidVectorError(MemHNSWError, ValueError):
    """Input cannot be read as a 1-D numeric vector."""


class DuplicateKeyError(MemHNSWError, KeyError):
    """Insert with a key that is already in the index."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"Key '{self.key}' already exists in the index"


class EmptyIndexError(MemHNSWError, LookupError):
    """Query issued before anything was inserted."""


class BackingStoreError(MemHNSWError):
    """I/O failure in the durable vector store."""


class PartialBatchError(BackingStoreError):
    """
    Store failure part-way through a bulk insert.

    The batch is inserted in order, so `committed` is a prefix of its keys:
    those nodes are in the graph and searchable. `remaining` never entered
    the graph, though a backed index has already written their vectors.
    """

    def __init__(self, committed, remaining, cause: Exception) -> None:
        self.committed = list(committed)
        self.remaining = list(remaining)
        total = len(self.committed) + len(self.remaining)
        super().__init__(
            f"Bulk insert stopped after {len(self.committed)} of {total} nodes: {cause}"
        )


class UnreachableNodeError(MemHNSWError, KeyError):
    """Skip-index load referenced keys that are not part of the loaded graph."""

    def __init__(self, keys) -> None:
        self.keys = list(keys)
        super().__init__(self.keys)

    def __str__(self) -> str:
        preview = ", ".join(repr(k) for k in self.keys[:5])
        more = f" (+{len(self.keys) - 5} more)" if len(self.keys) > 5 else ""
        return (
            f"{len(self.keys)} key(s) are not in the loaded graph and would be "
            f"unreachable from search: {preview}{more}"
        )


class SnapshotError(MemHNSWError, ValueError):
    """Snapshot is malformed or internally inconsistent."""


class UnreachableNodeWarning(UserWarning):
    """Vectors were stored for keys that have no graph membership."""
