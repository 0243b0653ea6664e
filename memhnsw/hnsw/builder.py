"""
HNSW graph construction and insertion logic.

This module handles adding new nodes to the HNSW graph. The insertion algorithm:
1. Takes the layer drawn for the new node
2. Finds the closest node by greedy descent from the entry point
3. Beam-searches each layer the node lives in for connection candidates
4. Picks neighbors with the diversity heuristic (M per layer, M_max0 at layer 0)
5. Links both directions and re-prunes any neighbor pushed over its cap

Insertion is split in two. plan_insert() only reads: it runs every search and
every pruning decision against the current graph and records the resulting
neighbor maps. apply() then writes those maps. Nothing in the graph changes
until the caller has stored the node's vector, so a failing backing store
cannot leave a half-linked node behind.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple
import numpy as np
import numpy.typing as npt

from memhnsw.hnsw.distance import DistanceFunction
from memhnsw.hnsw.graph import HNSWGraph, NeighborMap
from memhnsw.hnsw.searcher import HNSWSearcher
from memhnsw.hnsw.utils import select_neighbors_heuristic
from memhnsw.vector_store import NodeVectors

logger = logging.getLogger(__name__)

Vector = npt.NDArray[np.float32]
Candidate = Tuple[float, str]


@dataclass
class InsertPlan:
    """Graph changes computed for one insert, not yet applied."""

    key: str
    vector: Vector
    level: int
    # layer -> final neighbor maps of every node touched on that layer
    layer_updates: Dict[int, Dict[str, NeighborMap]] = field(default_factory=dict)


class HNSWBuilder:
    """
    Handles insertion of nodes into the HNSW graph.

    This class encapsulates the logic for adding new vectors to the index,
    including neighbor search, connection creation, and pruning.
    """

    def __init__(
        self,
        graph: HNSWGraph,
        vectors: NodeVectors,
        distance: DistanceFunction,
        searcher: HNSWSearcher,
        ef_construction: int = 100,
    ) -> None:
        """
        Initialize builder with a graph to operate on.

        Args:
            graph: The HNSWGraph to insert nodes into
            vectors: Vector access for existing nodes
            distance: Metric used for edge distances
            searcher: Searcher sharing the same graph (layer search routines)
            ef_construction: Beam width while looking for neighbors
        """
        self.graph = graph
        self.vectors = vectors
        self.distance = distance
        self.searcher = searcher
        self.ef_construction = ef_construction

    def insert(self, key: str, vector: Vector, level: int, store_vector: bool = True) -> None:
        """
        Insert a new node into the graph at a specific level.

        Args:
            key: Key of the new node
            vector: Vector data for the new node
            level: Maximum layer for this node
            store_vector: Write the vector before touching the graph. Bulk loads
                          pass False because they already wrote the whole batch.
        """
        plan = self.plan_insert(key, vector, level)
        if store_vector:
            self.vectors.put(key, vector)
        self.apply(plan)

    def plan_insert(self, key: str, vector: Vector, level: int) -> InsertPlan:
        """
        Work out every neighbor map the insert will produce, without mutating the graph.

        Args:
            key: Key of the new node
            vector: Vector data for the new node
            level: Maximum layer for this node

        Returns:
            InsertPlan to hand to apply()
        """
        plan = InsertPlan(key=key, vector=vector, level=level)

        # Special case: first node in the graph
        if self.graph.entry_point is None:
            for layer in range(level + 1):
                plan.layer_updates[layer] = {key: {}}
            return plan

        top_level = self.graph.get_max_level()

        # Coarse navigation above the node's own level
        nearest = self.searcher.greedy_descent(vector, target_level=level)
        entry_points: List[Candidate] = [nearest]

        for layer in range(min(level, top_level), -1, -1):
            candidates = self.searcher.search_layer(
                query=vector,
                entry_points=entry_points,
                ef=self.ef_construction,
                layer=layer,
            )
            plan.layer_updates[layer] = self._plan_layer(key, vector, candidates, layer)
            entry_points = candidates

        # New layers above the old top hold only the new node
        for layer in range(top_level + 1, level + 1):
            plan.layer_updates[layer] = {key: {}}

        return plan

    def apply(self, plan: InsertPlan) -> None:
        """Write a planned insert into the graph and move the entry point if needed."""
        previous_top = self.graph.get_max_level()
        self.graph.ensure_layers(plan.level)

        for layer, updates in plan.layer_updates.items():
            graph_layer = self.graph.layers[layer]
            for node_key, neighbors in updates.items():
                graph_layer.set_neighbors(node_key, neighbors)

        if self.graph.entry_point is None or plan.level > previous_top:
            logger.debug(
                f"Entry point moved to '{plan.key}' at level {plan.level} "
                f"(previous top {previous_top})"
            )
            self.graph.entry_point = plan.key

    def _plan_layer(
        self, key: str, vector: Vector, candidates: List[Candidate], layer: int
    ) -> Dict[str, NeighborMap]:
        """
        Choose the new node's neighbors on one layer and re-prune overflowing neighbors.

        Works on copies of the neighbor maps it touches. A pruned edge is removed
        from both endpoints so edges stay symmetric.
        """
        graph_layer = self.graph.layers[layer]
        max_neighbors = self.graph.max_neighbors(layer)
        pending = {key: vector}

        def distance_between(key1: str, key2: str) -> float:
            return self.distance(self._vector(key1, pending), self._vector(key2, pending))

        selected = select_neighbors_heuristic(candidates, max_neighbors, distance_between)

        working: Dict[str, NeighborMap] = {key: {k: d for d, k in selected}}

        def neighbors_of(node_key: str) -> NeighborMap:
            if node_key not in working:
                working[node_key] = dict(graph_layer.get_neighbors(node_key))
            return working[node_key]

        for dist, neighbor_key in selected:
            neighbor_map = neighbors_of(neighbor_key)
            neighbor_map[key] = dist

            if len(neighbor_map) <= max_neighbors:
                continue

            kept = select_neighbors_heuristic(
                [(d, k) for k, d in neighbor_map.items()],
                max_neighbors,
                distance_between,
            )
            kept_keys = {k for _, k in kept}

            for dropped_key in [k for k in neighbor_map if k not in kept_keys]:
                neighbors_of(dropped_key).pop(neighbor_key, None)

            working[neighbor_key] = {k: d for d, k in kept}

        return working

    def _vector(self, key: str, pending: Dict[str, Vector]) -> Vector:
        vector = pending.get(key)
        if vector is not None:
            return vector
        return self.vectors.get(key)
