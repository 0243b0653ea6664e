"""
Pytest configuration and shared fixtures for memhnsw tests
"""

import pytest
import numpy as np
from typing import List

from memhnsw import HNSW


@pytest.fixture
def sample_vectors() -> np.ndarray:
    """Generate sample vectors for testing."""
    np.random.seed(42)
    return np.random.rand(10, 384).astype(np.float32)


@pytest.fixture
def sample_keys() -> List[str]:
    """Keys matching sample_vectors."""
    return [str(i) for i in range(10)]


@pytest.fixture
def sample_texts() -> List[str]:
    """Sample text documents for testing."""
    return [
        "Machine learning is a subset of artificial intelligence",
        "Deep learning uses neural networks with multiple layers",
        "Natural language processing helps computers understand human language",
        "Computer vision enables machines to interpret visual information",
        "Reinforcement learning trains agents through rewards and penalties",
    ]


@pytest.fixture
def dimension() -> int:
    """Standard vector dimension for testing."""
    return 384


@pytest.fixture
def clustered_vectors() -> np.ndarray:
    """200 vectors in 8 loose clusters (dimension 32)."""
    rng = np.random.default_rng(7)
    centers = rng.normal(size=(8, 32))
    points = centers[rng.integers(0, 8, size=200)] + 0.3 * rng.normal(size=(200, 32))
    return points.astype(np.float32)


@pytest.fixture
def built_index(clustered_vectors) -> HNSW:
    """Seeded index holding clustered_vectors under keys "0".."199"."""
    index = HNSW(distance_function="cosine", M=8, ef_construction=64, seed=20240101)
    index.bulk_insert([str(i) for i in range(len(clustered_vectors))], clustered_vectors)
    return index
