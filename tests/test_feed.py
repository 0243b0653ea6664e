"""
Tests for the streaming batch loader.

Covers:
- Sequential key assignment and batching
- on_batch callbacks with keys and texts
- Failed batches being logged and skipped
- Partly loaded batches reporting their indexed prefix
- Skip-index loading over a restored graph
"""

import logging

import numpy as np
import pytest

from memhnsw import HNSW, HNSWConfig, InMemoryVectorStore, StreamLoader


def make_records(texts, dim=8, seed=0):
    rng = np.random.default_rng(seed)
    return [(text, rng.normal(size=dim).astype(np.float32)) for text in texts]


class BrokenReadStore(InMemoryVectorStore):
    """In-memory store whose reads fail once fail_when() turns true."""

    def __init__(self, fail_when):
        super().__init__()
        self.fail_when = fail_when

    def get(self, key):
        if self.fail_when():
            raise IOError("read error")
        return super().get(key)


def test_feed_assigns_sequential_keys(sample_texts):
    """Records get keys "0", "1", ... in arrival order"""
    index = HNSW(seed=1)
    loader = StreamLoader(index, batch_size=2)

    summary = loader.feed(make_records(sample_texts))

    assert summary.loaded == 5
    assert summary.batches == 3
    assert summary.failed_batches == 0
    assert sorted(index.graph_layers[0].keys()) == ["0", "1", "2", "3", "4"]


def test_on_batch_receives_keys_and_texts(sample_texts):
    """The callback sees each loaded batch's keys and texts"""
    seen = []
    index = HNSW(seed=2)
    loader = StreamLoader(index, batch_size=3, on_batch=lambda keys, texts: seen.append((keys, texts)))

    loader.feed(make_records(sample_texts))

    assert seen == [
        (["0", "1", "2"], sample_texts[:3]),
        (["3", "4"], sample_texts[3:]),
    ]


def test_add_flushes_full_batches(sample_texts):
    """add() loads as soon as a batch fills; finish() loads the rest"""
    index = HNSW(seed=3)
    loader = StreamLoader(index, batch_size=2)

    records = make_records(sample_texts)
    keys = [loader.add(text, vector) for text, vector in records[:3]]

    assert keys == ["0", "1", "2"]
    assert index.size() == 2

    loader.finish()
    assert index.size() == 3


def test_failed_batch_is_logged_and_skipped(sample_texts, caplog):
    """A bad batch is counted and logged; later batches still load"""
    records = make_records(sample_texts)
    records[2] = (records[2][0], np.ones(3, dtype=np.float32))  # wrong dimension

    index = HNSW(seed=4)
    loader = StreamLoader(index, batch_size=2)

    with caplog.at_level(logging.ERROR, logger="memhnsw.feed"):
        summary = loader.feed(records)

    assert summary.loaded == 3
    assert summary.batches == 2
    assert summary.failed_batches == 1
    assert "2" not in index and "3" not in index
    assert "4" in index, "Keys keep counting past a failed batch"
    assert any("Failed to load batch" in r.getMessage() for r in caplog.records)


def test_malformed_record_does_not_stop_stream(sample_texts):
    """A 2D embedding fails only its own batch"""
    texts = sample_texts + ["extra"]
    records = make_records(texts)
    records[3] = (records[3][0], np.ones((2, 4), dtype=np.float32))

    index = HNSW(seed=6)
    summary = StreamLoader(index, batch_size=2).feed(records)

    assert summary.failed_batches == 1
    assert summary.loaded == 4
    assert sorted(index.graph_layers[0].keys()) == ["0", "1", "4", "5"]


def test_partly_loaded_batch_reports_indexed_prefix(caplog):
    """Records linked before a store failure count as loaded and reach on_batch"""
    texts = [f"doc {i}" for i in range(24)]
    seen = []
    index = HNSW(
        M=4,
        seed=7,
        backing_store=BrokenReadStore(lambda: "20" in index),
        config=HNSWConfig(cache_size=0),
    )
    loader = StreamLoader(index, batch_size=20, on_batch=lambda keys, batch_texts: seen.append((keys, batch_texts)))

    with caplog.at_level(logging.ERROR, logger="memhnsw.feed"):
        summary = loader.feed(make_records(texts))

    assert summary.batches == 1
    assert summary.failed_batches == 1
    assert summary.loaded == 21
    assert seen[-1] == (["20"], ["doc 20"])
    assert "20" in index and "21" not in index
    assert any("after 1 were indexed" in r.getMessage() for r in caplog.records)


def test_skip_index_feed(sample_texts):
    """skip_index loading backs vectors into a restored graph"""
    records = make_records(sample_texts)
    source = HNSW(seed=5)
    StreamLoader(source, batch_size=10).feed(records)

    restored = HNSW()
    restored.load_index(source.export_index())
    summary = StreamLoader(restored, batch_size=2, skip_index=True).feed(records)

    assert summary.loaded == 5
    query = records[1][1]
    assert restored.query(query, top_k=3) == source.query(query, top_k=3)


def test_invalid_batch_size():
    """Batch size must be positive"""
    with pytest.raises(ValueError):
        StreamLoader(HNSW(), batch_size=0)
