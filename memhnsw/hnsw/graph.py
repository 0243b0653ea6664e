"""
HNSW graph data structures.

This module defines the core data structures for storing the HNSW graph topology:
- GraphLayer: One level of the graph, mapping each node key to its neighbors
- HNSWGraph: The ordered stack of layers plus the entry point and degree caps

The graph is hierarchical: layer 0 is a dense graph with every node, while higher
layers contain progressively fewer nodes for faster coarse-grained search.
Every edge carries the distance between its endpoints, computed once when the
edge is created. Vectors are not stored here; see memhnsw.vector_store.
"""

from typing import Dict, Iterator, List, Optional

# neighbor key -> cached distance
NeighborMap = Dict[str, float]


class GraphLayer:
    """
    One layer of the proximity graph.

    Maps a node key to its neighbor map. Edges are kept symmetric by the
    graph-level helpers (HNSWGraph.add_edge / remove_edge), which update both
    endpoints together.
    """

    def __init__(self) -> None:
        self.graph: Dict[str, NeighborMap] = {}

    def add_node(self, key: str, neighbors: Optional[NeighborMap] = None) -> None:
        self.graph[key] = dict(neighbors) if neighbors else {}

    def get_neighbors(self, key: str) -> NeighborMap:
        """
        Get the neighbors of a node in this layer.

        Returns:
            Mapping of neighbor key to cached distance, or an empty dict if the
            node is not in this layer
        """
        return self.graph.get(key, {})

    def set_neighbors(self, key: str, neighbors: NeighborMap) -> None:
        self.graph[key] = dict(neighbors)

    def degree(self, key: str) -> int:
        return len(self.graph.get(key, {}))

    def keys(self) -> Iterator[str]:
        return iter(self.graph)

    def to_dict(self) -> Dict[str, NeighborMap]:
        return {key: dict(neighbors) for key, neighbors in self.graph.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, NeighborMap]) -> "GraphLayer":
        layer = cls()
        for key, neighbors in data.items():
            layer.add_node(str(key), {str(k): float(d) for k, d in neighbors.items()})
        return layer

    def __contains__(self, key: object) -> bool:
        return key in self.graph

    def __len__(self) -> int:
        return len(self.graph)

    def __repr__(self) -> str:
        return f"GraphLayer(nodes={len(self.graph)})"


class HNSWGraph:
    """
    Container for the entire HNSW graph structure.

    Owns the stack of layers (index 0 = bottom), tracks the entry point for
    searches, and knows the per-layer degree caps.
    """

    def __init__(self, M: int = 16, M_max0: Optional[int] = None) -> None:
        """
        Initialize an empty HNSW graph.

        Args:
            M: Maximum number of neighbors per node at layers > 0 (typical: 16-64)
            M_max0: Maximum neighbors at layer 0 (default: 2*M for a denser base layer)
        """
        self.M = M
        self.M_max0 = M_max0 if M_max0 is not None else 2 * M

        self.layers: List[GraphLayer] = []

        # None when graph is empty
        self.entry_point: Optional[str] = None

    def max_neighbors(self, layer: int) -> int:
        """Degree cap for a layer."""
        return self.M_max0 if layer == 0 else self.M

    def get_max_level(self) -> int:
        """
        Get the index of the top layer.

        Returns:
            Top layer number, or -1 if graph is empty
        """
        return len(self.layers) - 1

    def ensure_layers(self, level: int) -> None:
        """Create empty layers so that layer `level` exists."""
        while len(self.layers) <= level:
            self.layers.append(GraphLayer())

    def node_level(self, key: str) -> int:
        """
        Highest layer containing the node.

        Returns:
            Level of the node, or -1 if it is not in the graph
        """
        level = -1
        for layer_index, layer in enumerate(self.layers):
            if key not in layer:
                break
            level = layer_index
        return level

    def add_edge(self, key1: str, key2: str, distance: float, layer: int) -> None:
        """
        Create a bidirectional connection carrying the same distance on both sides.

        Raises:
            ValueError: If either node is missing from the layer
        """
        graph_layer = self.layers[layer]
        if key1 not in graph_layer or key2 not in graph_layer:
            raise ValueError(f"Node not found in layer {layer}: {key1} or {key2}")

        graph_layer.graph[key1][key2] = distance
        graph_layer.graph[key2][key1] = distance

    def remove_edge(self, key1: str, key2: str, layer: int) -> None:
        """Drop the connection in both directions (no-op if absent)."""
        graph_layer = self.layers[layer]
        graph_layer.graph.get(key1, {}).pop(key2, None)
        graph_layer.graph.get(key2, {}).pop(key1, None)

    def size(self) -> int:
        """
        Get the total number of nodes in the graph.

        Returns:
            Number of nodes in layer 0
        """
        if not self.layers:
            return 0
        return len(self.layers[0])

    def clear(self) -> None:
        self.layers = []
        self.entry_point = None

    def __contains__(self, key: object) -> bool:
        return bool(self.layers) and key in self.layers[0]

    def __repr__(self) -> str:
        return (
            f"HNSWGraph(nodes={self.size()}, max_level={self.get_max_level()}, "
            f"M={self.M}, M_max0={self.M_max0})"
        )
