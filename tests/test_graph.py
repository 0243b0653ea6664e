"""
Tests for HNSW graph data structures.

Covers:
- GraphLayer node and neighbor bookkeeping
- HNSWGraph layers, degree caps and entry point
- Symmetric edge helpers
"""

import pytest

from memhnsw.hnsw.graph import GraphLayer, HNSWGraph


def test_layer_add_and_get_neighbors():
    """Nodes start with the neighbors they are given"""
    layer = GraphLayer()
    layer.add_node("a")
    layer.add_node("b", {"a": 0.5})

    assert "a" in layer and "b" in layer
    assert layer.get_neighbors("a") == {}
    assert layer.get_neighbors("b") == {"a": 0.5}
    assert len(layer) == 2


def test_layer_missing_node_has_no_neighbors():
    """Unknown keys report an empty neighbor map"""
    layer = GraphLayer()
    assert layer.get_neighbors("missing") == {}
    assert layer.degree("missing") == 0


def test_layer_set_neighbors_copies():
    """set_neighbors stores a copy of the map it is given"""
    layer = GraphLayer()
    neighbors = {"x": 0.1}
    layer.set_neighbors("a", neighbors)
    neighbors["y"] = 0.2

    assert layer.get_neighbors("a") == {"x": 0.1}


def test_layer_dict_round_trip():
    """to_dict/from_dict keep keys and cached distances"""
    layer = GraphLayer()
    layer.add_node("a", {"b": 0.25})
    layer.add_node("b", {"a": 0.25})

    restored = GraphLayer.from_dict(layer.to_dict())
    assert restored.to_dict() == {"a": {"b": 0.25}, "b": {"a": 0.25}}


def test_graph_default_caps():
    """Layer 0 allows 2*M neighbors, upper layers M"""
    graph = HNSWGraph(M=4)

    assert graph.max_neighbors(0) == 8
    assert graph.max_neighbors(1) == 4
    assert graph.max_neighbors(5) == 4


def test_graph_explicit_layer0_cap():
    """M_max0 can be set independently"""
    graph = HNSWGraph(M=4, M_max0=12)
    assert graph.max_neighbors(0) == 12


def test_empty_graph():
    """An empty graph has no layers and no entry point"""
    graph = HNSWGraph(M=4)

    assert graph.size() == 0
    assert graph.get_max_level() == -1
    assert graph.entry_point is None
    assert "a" not in graph


def test_ensure_layers_and_node_level():
    """ensure_layers grows the stack; node_level reports the highest layer"""
    graph = HNSWGraph(M=4)
    graph.ensure_layers(2)
    assert graph.get_max_level() == 2

    for level in range(3):
        graph.layers[level].add_node("top")
    graph.layers[0].add_node("bottom")

    assert graph.node_level("top") == 2
    assert graph.node_level("bottom") == 0
    assert graph.node_level("missing") == -1
    assert graph.size() == 2


def test_add_edge_is_symmetric():
    """add_edge links both endpoints with the same distance"""
    graph = HNSWGraph(M=4)
    graph.ensure_layers(0)
    graph.layers[0].add_node("a")
    graph.layers[0].add_node("b")

    graph.add_edge("a", "b", 0.3, layer=0)

    assert graph.layers[0].get_neighbors("a") == {"b": 0.3}
    assert graph.layers[0].get_neighbors("b") == {"a": 0.3}


def test_add_edge_missing_node_raises():
    """Edges need both endpoints on the layer"""
    graph = HNSWGraph(M=4)
    graph.ensure_layers(0)
    graph.layers[0].add_node("a")

    with pytest.raises(ValueError):
        graph.add_edge("a", "ghost", 0.1, layer=0)


def test_remove_edge():
    """remove_edge drops both directions and ignores missing edges"""
    graph = HNSWGraph(M=4)
    graph.ensure_layers(0)
    graph.layers[0].add_node("a")
    graph.layers[0].add_node("b")
    graph.add_edge("a", "b", 0.3, layer=0)

    graph.remove_edge("a", "b", layer=0)
    graph.remove_edge("a", "b", layer=0)

    assert graph.layers[0].degree("a") == 0
    assert graph.layers[0].degree("b") == 0


def test_clear():
    """clear() empties the graph"""
    graph = HNSWGraph(M=4)
    graph.ensure_layers(1)
    graph.layers[0].add_node("a")
    graph.entry_point = "a"

    graph.clear()

    assert graph.size() == 0
    assert graph.entry_point is None
