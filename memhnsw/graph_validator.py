"""Graph validation and connectivity checks for HNSW indexes.

This module checks that the structural invariants of the graph hold after
inserts and snapshot loads:
- edges are symmetric and carry the same distance on both sides
- no node exceeds its layer's degree cap
- every node on layer L is also on layer L-1
- nodes are reachable from the entry point
"""

from typing import Dict, List, Set, Tuple
from collections import deque

from memhnsw.hnsw.graph import HNSWGraph


# (layer, from_key, to_key)
EdgeId = Tuple[int, str, str]


class GraphValidator:
    """Validates graph structure and connectivity properties.

    Read-only: none of the checks modify the graph.
    """

    def __init__(self, graph: HNSWGraph) -> None:
        """Initialize the validator.

        Args:
            graph: Graph to inspect
        """
        self.graph = graph

    def asymmetric_edges(self) -> List[EdgeId]:
        """Edges whose reverse is missing or carries a different distance.

        Returns:
            (layer, from_key, to_key) for every offending edge
        """
        violations: List[EdgeId] = []

        for level, layer in enumerate(self.graph.layers):
            for key in layer.keys():
                for neighbor_key, distance in layer.get_neighbors(key).items():
                    reverse = layer.get_neighbors(neighbor_key)
                    if reverse.get(key) != distance:
                        violations.append((level, key, neighbor_key))

        return violations

    def over_capacity_nodes(self) -> List[Tuple[int, str, int]]:
        """Nodes holding more neighbors than their layer allows.

        Returns:
            (layer, key, degree) for every offending node
        """
        violations = []

        for level, layer in enumerate(self.graph.layers):
            cap = self.graph.max_neighbors(level)
            for key in layer.keys():
                degree = layer.degree(key)
                if degree > cap:
                    violations.append((level, key, degree))

        return violations

    def membership_violations(self) -> List[Tuple[int, str]]:
        """Nodes present on a layer but missing from the layer below.

        Returns:
            (layer, key) for every offending node
        """
        violations = []

        for level in range(1, len(self.graph.layers)):
            lower = self.graph.layers[level - 1]
            for key in self.graph.layers[level].keys():
                if key not in lower:
                    violations.append((level, key))

        return violations

    def unreachable_nodes(self, layer: int = 0) -> Set[str]:
        """Nodes on a layer that cannot be reached from the entry point.

        Uses BFS over that layer's edges. HNSW does not guarantee full
        reachability, so this is a health metric rather than an invariant.

        Args:
            layer: Layer to traverse

        Returns:
            Set of unreachable keys (empty for an empty graph)
        """
        if self.graph.entry_point is None or layer > self.graph.get_max_level():
            return set()

        graph_layer = self.graph.layers[layer]
        start = self.graph.entry_point

        visited: Set[str] = {start}
        queue: deque = deque([start])

        while queue:
            current = queue.popleft()

            for neighbor in graph_layer.get_neighbors(current):
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)

        return set(graph_layer.keys()) - visited

    def is_connected(self, key_u: str, key_v: str, layer: int = 0) -> bool:
        """Check if two nodes are connected via any path on a layer.

        Args:
            key_u: Start node
            key_v: Target node
            layer: Layer to traverse

        Returns:
            True if there exists a path from key_u to key_v
        """
        if layer > self.graph.get_max_level():
            return False

        graph_layer = self.graph.layers[layer]
        if key_u not in graph_layer or key_v not in graph_layer:
            return False

        if key_u == key_v:
            return True

        visited: Set[str] = {key_u}
        queue: deque = deque([key_u])

        while queue:
            current = queue.popleft()

            if current == key_v:
                return True

            for neighbor in graph_layer.get_neighbors(current):
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)

        return False

    def is_valid(self) -> bool:
        """True when symmetry, degree caps, membership and entry point placement all hold."""
        if self.graph.entry_point is not None:
            if self.graph.entry_point not in self.graph.layers[-1]:
                return False

        return not (
            self.asymmetric_edges()
            or self.over_capacity_nodes()
            or self.membership_violations()
        )

    def get_graph_statistics(self) -> Dict[str, object]:
        """Compute overall graph statistics.

        Returns:
            Dictionary with node/edge counts, per-layer sizes and layer-0 degree stats
        """
        if self.graph.size() == 0:
            return {
                "node_count": 0,
                "layer_count": 0,
                "layer_sizes": [],
                "edge_count": 0,
                "avg_degree": 0.0,
                "min_degree": 0,
                "max_degree": 0,
                "unreachable_count": 0,
            }

        base = self.graph.layers[0]
        degrees = [base.degree(key) for key in base.keys()]
        edge_count = sum(
            sum(layer.degree(key) for key in layer.keys()) // 2
            for layer in self.graph.layers
        )

        return {
            "node_count": self.graph.size(),
            "layer_count": len(self.graph.layers),
            "layer_sizes": [len(layer) for layer in self.graph.layers],
            "edge_count": edge_count,
            "avg_degree": sum(degrees) / len(degrees),
            "min_degree": min(degrees),
            "max_degree": max(degrees),
            "unreachable_count": len(self.unreachable_nodes(0)),
        }
