"""
HNSW (Hierarchical Navigable Small World) implementation module.

This module contains the core HNSW algorithm components for building and searching
graph-based approximate nearest neighbor indexes.

Components:
- distance: Similarity metrics (cosine, cosine-normalized, custom callables)
- utils: Seeded level generation and the neighbor-selection heuristic
- graph: Layer and graph data structures
- builder: Insertion algorithm
- searcher: Greedy and beam search
"""

from memhnsw.hnsw.distance import (
    DistanceFunction,
    cosine_distance,
    cosine_normalized_distance,
    cosine_similarity,
    get_distance_function,
    normalize_vector,
)
from memhnsw.hnsw.graph import GraphLayer, HNSWGraph
from memhnsw.hnsw.builder import HNSWBuilder, InsertPlan
from memhnsw.hnsw.searcher import HNSWSearcher
from memhnsw.hnsw.utils import LevelGenerator, select_neighbors_heuristic

__all__ = [
    "DistanceFunction",
    "cosine_similarity",
    "cosine_distance",
    "cosine_normalized_distance",
    "get_distance_function",
    "normalize_vector",
    "GraphLayer",
    "HNSWGraph",
    "HNSWBuilder",
    "InsertPlan",
    "HNSWSearcher",
    "LevelGenerator",
    "select_neighbors_heuristic",
]
