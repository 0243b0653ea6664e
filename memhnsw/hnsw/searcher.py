"""
HNSW search algorithm.

This module handles querying the HNSW graph to find approximate nearest neighbors.
The search algorithm:
1. Starts at the entry point (top layer)
2. Greedily navigates down through layers to get closer to the query
3. At layer 0, expands the search using the ef_search parameter
4. Returns the k nearest neighbors

The ef_search parameter controls the accuracy-speed tradeoff:
- Higher ef_search = better recall, slower search
- Lower ef_search = faster search, lower recall

The same layer routines are used by the builder during insertion.
"""

import heapq
from typing import List, Optional, Set, Tuple
import numpy as np
import numpy.typing as npt

from memhnsw.hnsw.distance import DistanceFunction
from memhnsw.hnsw.graph import HNSWGraph
from memhnsw.vector_store import NodeVectors

Vector = npt.NDArray[np.float32]
Candidate = Tuple[float, str]


class HNSWSearcher:
    """
    Handles search queries on the HNSW graph.

    Vectors are read through NodeVectors, so the same searcher works whether
    vectors are resident or fetched from a backing store.
    """

    def __init__(
        self,
        graph: HNSWGraph,
        vectors: NodeVectors,
        distance: DistanceFunction,
        ef_search: int = 50,
    ) -> None:
        """
        Initialize searcher with a graph.

        Args:
            graph: The HNSWGraph to search in
            vectors: Vector access for graph nodes
            distance: Metric used for every comparison
            ef_search: Size of candidate list during search (higher = better recall)
        """
        self.graph = graph
        self.vectors = vectors
        self.distance = distance
        self.ef_search = ef_search

    def search(self, query: Vector, k: int, ef_search: Optional[int] = None) -> List[Candidate]:
        """
        Search for k nearest neighbors to the query vector.

        Args:
            query: Query vector to search for
            k: Number of nearest neighbors to return
            ef_search: Override default ef_search for this query

        Returns:
            List of (distance, key) tuples, closest first
        """
        if self.graph.size() == 0:
            return []

        ef = ef_search if ef_search is not None else self.ef_search
        ef = max(ef, k)

        nearest = self.greedy_descent(query, target_level=0)
        candidates = self.search_layer(query, entry_points=[nearest], ef=ef, layer=0)

        return candidates[:k]

    def entry_candidate(self, query: Vector) -> Candidate:
        """Distance from the query to the current entry point."""
        entry_point = self.graph.entry_point
        return (self.distance(query, self.vectors.get(entry_point)), entry_point)

    def greedy_descent(self, query: Vector, target_level: int) -> Candidate:
        """
        Walk from the entry point down to target_level, one greedy step chain per layer.

        Layers above target_level are only used for coarse navigation, so each
        one keeps a single closest node (beam width 1).

        Returns:
            Closest (distance, key) found on layer target_level + 1, or the entry
            point itself if there are no layers above target_level
        """
        nearest = self.entry_candidate(query)

        for layer in range(self.graph.get_max_level(), target_level, -1):
            nearest = self.greedy_search_layer(query, nearest, layer)

        return nearest

    def greedy_search_layer(self, query: Vector, entry: Candidate, layer: int) -> Candidate:
        """
        Move to the closest neighbor until no neighbor improves on the current node.

        Args:
            query: Query vector
            entry: (distance, key) to start from
            layer: Which layer to walk on

        Returns:
            The local minimum reached, as (distance, key)
        """
        current = entry
        graph_layer = self.graph.layers[layer]

        while True:
            best = current
            for neighbor_key in graph_layer.get_neighbors(current[1]):
                dist = self.distance(query, self.vectors.get(neighbor_key))
                if (dist, neighbor_key) < best:
                    best = (dist, neighbor_key)

            if best[0] >= current[0]:
                return current
            current = best

    def search_layer(
        self,
        query: Vector,
        entry_points: List[Candidate],
        ef: int,
        layer: int,
    ) -> List[Candidate]:
        """
        Best-first beam search for nearest neighbors at a single layer.

        Keeps a min-heap of candidates to expand and a max-heap of the ef best
        results seen. Stops once the closest unexpanded candidate is farther
        than the worst result in a full result set.

        Args:
            query: Query vector to search for
            entry_points: Starting (distance, key) pairs
            ef: Beam width (maximum number of results kept)
            layer: Which layer to search on

        Returns:
            Up to ef (distance, key) pairs sorted by distance, ties by key
        """
        graph_layer = self.graph.layers[layer]

        visited: Set[str] = {key for _, key in entry_points}

        candidates: List[Candidate] = list(entry_points)
        heapq.heapify(candidates)

        # Max-heap via negated distance
        results: List[Tuple[float, str]] = [(-dist, key) for dist, key in entry_points]
        heapq.heapify(results)
        while len(results) > ef:
            heapq.heappop(results)

        while candidates:
            current_dist, current_key = heapq.heappop(candidates)

            if len(results) >= ef and current_dist > -results[0][0]:
                break

            for neighbor_key in graph_layer.get_neighbors(current_key):
                if neighbor_key in visited:
                    continue
                visited.add(neighbor_key)

                dist = self.distance(query, self.vectors.get(neighbor_key))

                if len(results) < ef or dist < -results[0][0]:
                    heapq.heappush(candidates, (dist, neighbor_key))
                    heapq.heappush(results, (-dist, neighbor_key))
                    if len(results) > ef:
                        heapq.heappop(results)

        return sorted((-neg_dist, key) for neg_dist, key in results)
