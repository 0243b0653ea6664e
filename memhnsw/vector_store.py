"""Vector storage for the HNSW index.

The graph only holds topology; raw vectors live behind NodeVectors, which
either keeps them in a dict or reads them on demand from a durable
key-value store through a bounded LRU cache.

Backing stores:
- InMemoryVectorStore: dict based (testing/development)
- SQLiteVectorStore: sqlite3 table of float32 blobs (survives restarts)
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from collections import OrderedDict
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt

from memhnsw.errors import BackingStoreError

logger = logging.getLogger(__name__)

Vector = npt.NDArray[np.float32]

# sqlite's default SQLITE_MAX_VARIABLE_NUMBER on older builds is 999
_SQLITE_BATCH = 500


class VectorBackingStore(ABC):
    """Abstract key -> vector store the index can be backed by."""

    @abstractmethod
    def get(self, key: str) -> Optional[Vector]:
        """Return the vector for key, or None if absent."""
        ...

    @abstractmethod
    def put(self, key: str, vector: Vector) -> None:
        ...

    @abstractmethod
    def bulk_put(self, entries: Sequence[Tuple[str, Vector]]) -> None:
        """Write many vectors in one round trip."""
        ...

    @abstractmethod
    def bulk_get(self, keys: Sequence[str]) -> List[Optional[Vector]]:
        """Return vectors aligned with keys (None where absent)."""
        ...

    @abstractmethod
    def clear(self) -> None:
        ...

    def close(self) -> None:
        """Release any held resources."""

    @abstractmethod
    def __len__(self) -> int:
        ...


class InMemoryVectorStore(VectorBackingStore):
    """Dict-backed store. Useful for tests and for exercising the backed code path."""

    def __init__(self) -> None:
        self._vectors: Dict[str, Vector] = {}

    def get(self, key: str) -> Optional[Vector]:
        return self._vectors.get(key)

    def put(self, key: str, vector: Vector) -> None:
        self._vectors[key] = vector

    def bulk_put(self, entries: Sequence[Tuple[str, Vector]]) -> None:
        for key, vector in entries:
            self._vectors[key] = vector

    def bulk_get(self, keys: Sequence[str]) -> List[Optional[Vector]]:
        return [self._vectors.get(key) for key in keys]

    def clear(self) -> None:
        self._vectors.clear()

    def __len__(self) -> int:
        return len(self._vectors)


class SQLiteVectorStore(VectorBackingStore):
    """Durable store keeping each vector as a float32 blob in a sqlite table."""

    def __init__(self, path: Union[str, Path] = ":memory:", table: str = "vectors") -> None:
        if not table.isidentifier():
            raise ValueError(f"Invalid table name: {table!r}")

        self.path = str(path)
        self.table = table

        try:
            self._conn = sqlite3.connect(self.path)
            with self._conn:
                self._conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {self.table} ("
                    "key TEXT PRIMARY KEY, "
                    "vector BLOB NOT NULL)"
                )
        except sqlite3.Error as e:
            raise BackingStoreError(f"Failed to open vector store at {self.path}: {e}") from e

        logger.info(f"Opened sqlite vector store at {self.path} (table={self.table})")

    @staticmethod
    def _encode(vector: Vector) -> bytes:
        return np.asarray(vector, dtype=np.float32).tobytes()

    @staticmethod
    def _decode(blob: bytes) -> Vector:
        return np.frombuffer(blob, dtype=np.float32).copy()

    def get(self, key: str) -> Optional[Vector]:
        try:
            row = self._conn.execute(
                f"SELECT vector FROM {self.table} WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise BackingStoreError(f"Failed to read vector '{key}': {e}") from e

        if row is None:
            return None
        return self._decode(row[0])

    def put(self, key: str, vector: Vector) -> None:
        self.bulk_put([(key, vector)])

    def bulk_put(self, entries: Sequence[Tuple[str, Vector]]) -> None:
        rows = [(key, self._encode(vector)) for key, vector in entries]
        try:
            with self._conn:
                self._conn.executemany(
                    f"INSERT OR REPLACE INTO {self.table} (key, vector) VALUES (?, ?)",
                    rows,
                )
        except sqlite3.Error as e:
            raise BackingStoreError(f"Failed to write {len(rows)} vector(s): {e}") from e

    def bulk_get(self, keys: Sequence[str]) -> List[Optional[Vector]]:
        found: Dict[str, Vector] = {}
        keys = list(keys)

        try:
            for start in range(0, len(keys), _SQLITE_BATCH):
                chunk = keys[start : start + _SQLITE_BATCH]
                placeholders = ",".join("?" for _ in chunk)
                rows = self._conn.execute(
                    f"SELECT key, vector FROM {self.table} WHERE key IN ({placeholders})",
                    chunk,
                ).fetchall()
                for key, blob in rows:
                    found[key] = self._decode(blob)
        except sqlite3.Error as e:
            raise BackingStoreError(f"Failed to read {len(keys)} vector(s): {e}") from e

        return [found.get(key) for key in keys]

    def clear(self) -> None:
        try:
            with self._conn:
                self._conn.execute(f"DELETE FROM {self.table}")
        except sqlite3.Error as e:
            raise BackingStoreError(f"Failed to clear vector store: {e}") from e

    def close(self) -> None:
        self._conn.close()

    def __len__(self) -> int:
        try:
            return self._conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]
        except sqlite3.Error as e:
            raise BackingStoreError(f"Failed to count vectors: {e}") from e


class NodeVectors:
    """
    Key -> vector access used by the searcher and builder.

    Without a backing store every vector is held in a dict. With one, only an
    LRU cache of recently used vectors (plus any batch pinned by bulk insert)
    stays resident and everything else is fetched on demand.
    """

    def __init__(
        self,
        backing_store: Optional[VectorBackingStore] = None,
        cache_size: int = 10000,
    ) -> None:
        self.backing_store = backing_store
        self.cache_size = cache_size

        self._resident: Dict[str, Vector] = {}
        self._cache: "OrderedDict[str, Vector]" = OrderedDict()
        self._pinned: Dict[str, Vector] = {}

    @property
    def is_backed(self) -> bool:
        return self.backing_store is not None

    def get(self, key: str) -> Vector:
        """
        Fetch the vector for a graph node.

        Raises:
            BackingStoreError: If the store fails or has no vector for the key
            KeyError: If the key is unknown and no backing store is in use
        """
        if not self.is_backed:
            return self._resident[key]

        vector = self._pinned.get(key)
        if vector is not None:
            return vector

        vector = self._cache.get(key)
        if vector is not None:
            self._cache.move_to_end(key)
            return vector

        vector = self._store_call("get", key)
        if vector is None:
            raise BackingStoreError(f"No vector stored for key '{key}'")

        self._remember(key, vector)
        return vector

    def put(self, key: str, vector: Vector) -> None:
        if not self.is_backed:
            self._resident[key] = vector
            return

        self._store_call("put", key, vector)
        self._remember(key, vector)

    def bulk_put(self, entries: Sequence[Tuple[str, Vector]]) -> None:
        if not self.is_backed:
            for key, vector in entries:
                self._resident[key] = vector
            return

        self._store_call("bulk_put", list(entries))
        for key, vector in entries:
            self._remember(key, vector)

    @contextmanager
    def pinned(self, entries: Iterable[Tuple[str, Vector]]) -> Iterator[None]:
        """Keep a batch resident (regardless of cache size) while it is being indexed."""
        if not self.is_backed:
            yield
            return

        batch = dict(entries)
        self._pinned.update(batch)
        try:
            yield
        finally:
            for key in batch:
                self._pinned.pop(key, None)

    def clear_resident(self) -> None:
        """Drop in-process vectors. The backing store itself is not touched."""
        self._resident.clear()
        self._cache.clear()
        self._pinned.clear()

    def _remember(self, key: str, vector: Vector) -> None:
        if self.cache_size <= 0:
            return
        self._cache[key] = vector
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    def _store_call(self, method: str, *args):
        try:
            return getattr(self.backing_store, method)(*args)
        except BackingStoreError:
            raise
        except Exception as e:
            raise BackingStoreError(f"Backing store {method}() failed: {e}") from e

    def __contains__(self, key: object) -> bool:
        if not self.is_backed:
            return key in self._resident
        return key in self._pinned or key in self._cache or self._store_call("get", key) is not None

    def __len__(self) -> int:
        if not self.is_backed:
            return len(self._resident)
        return self._store_call("__len__")
