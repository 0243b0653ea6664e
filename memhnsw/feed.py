"""
Batch loader feeding an arrival-ordered stream of (text, embedding) records into an index.

Records get sequential keys ("0", "1", ...) and are inserted in batches so a
backing store sees one write per batch. A batch that fails is logged and
skipped; the stream keeps going with the next one. When a backed batch fails
part-way, the records already linked count as loaded and reach on_batch.

Texts are not stored by the index. Pass on_batch to hand each loaded batch's
keys and texts to whatever document store the host uses.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from memhnsw.errors import MemHNSWError, PartialBatchError
from memhnsw.index import HNSW

logger = logging.getLogger(__name__)

Record = Tuple[str, Sequence[float]]
BatchCallback = Callable[[List[str], List[str]], None]


@dataclass
class LoadSummary:
    """Counters for a streaming load."""

    loaded: int = 0
    batches: int = 0
    failed_batches: int = 0


class StreamLoader:
    """
    Buffers incoming records and loads them into an HNSW index batch by batch.

    With skip_index=True the index is assumed to hold a graph restored by
    load_index(); batches only back the vectors in (bulk_insert_skip_index)
    and nothing is re-indexed.
    """

    def __init__(
        self,
        index: HNSW,
        batch_size: int = 100,
        skip_index: bool = False,
        on_batch: Optional[BatchCallback] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        self.index = index
        self.batch_size = batch_size
        self.skip_index = skip_index
        self.on_batch = on_batch

        self.summary = LoadSummary()
        self._next_key = 0
        self._pending: List[Tuple[str, str, Sequence[float]]] = []

    def add(self, text: str, embedding: Sequence[float]) -> str:
        """
        Queue one record, flushing when the batch is full.

        Returns:
            Key assigned to the record
        """
        key = str(self._next_key)
        self._next_key += 1

        self._pending.append((key, text, embedding))
        if len(self._pending) >= self.batch_size:
            self.flush()

        return key

    def feed(self, records: Iterable[Record]) -> LoadSummary:
        """Load every record from an iterable, then flush the remainder."""
        for text, embedding in records:
            self.add(text, embedding)
        return self.finish()

    def finish(self) -> LoadSummary:
        """Flush any partial batch and return the running summary."""
        self.flush()
        return self.summary

    def flush(self) -> None:
        """Load the pending batch (no-op when empty)."""
        if not self._pending:
            return

        batch = self._pending
        self._pending = []

        keys = [key for key, _, _ in batch]
        texts = [text for _, text, _ in batch]
        embeddings = [embedding for _, _, embedding in batch]

        try:
            if self.skip_index:
                self.index.bulk_insert_skip_index(keys, embeddings)
            else:
                self.index.bulk_insert(keys, embeddings)
        except PartialBatchError as e:
            self.summary.failed_batches += 1
            logger.exception(
                f"Batch of {len(keys)} records failed after {len(e.committed)} were indexed; "
                f"vectors for keys {e.remaining[0]}..{e.remaining[-1]} stay in the store unindexed"
            )
            if e.committed:
                self._loaded(e.committed, texts[: len(e.committed)])
            return
        except MemHNSWError:
            self.summary.failed_batches += 1
            logger.exception(
                f"Failed to load batch of {len(keys)} records (keys {keys[0]}..{keys[-1]}), "
                f"continuing with the next batch"
            )
            return

        self.summary.batches += 1
        self._loaded(keys, texts)
        logger.info(f"Loaded batch of {len(keys)} records ({self.summary.loaded} total)")

    def _loaded(self, keys: List[str], texts: List[str]) -> None:
        self.summary.loaded += len(keys)
        if self.on_batch is not None:
            self.on_batch(keys, texts)
