"""Serializable snapshot of an HNSW index.

A snapshot holds the graph topology (every layer with its cached edge
distances), the entry point, the insert counter and the configuration needed
to rebuild an equivalent index without re-inserting anything. Vectors are not
part of it; they are backed in separately (see HNSW.bulk_insert_skip_index).

JSON layout:
    {
      "layers": [{"key": {"neighbor": 0.12, ...}, ...}, ...],   # bottom to top
      "entryPoint": "key",
      "nodeCount": 10,
      "config": {"M": 16, "MMax0": 32, "efConstruction": 100, "efSearch": 50,
                 "seed": 42, "distanceFunction": "cosine", "dimension": 384}
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from memhnsw.errors import SnapshotError

LayerData = Dict[str, Dict[str, float]]

# snapshot key -> HNSWConfig field
CONFIG_FIELDS = {
    "M": "M",
    "MMax0": "M_max0",
    "efConstruction": "ef_construction",
    "efSearch": "ef_search",
    "seed": "seed",
    "distanceFunction": "distance_function",
    "dimension": "dimension",
}


@dataclass
class IndexSnapshot:
    """Graph state exported by HNSW.export_index()."""

    layers: List[LayerData] = field(default_factory=list)
    entry_point: Optional[str] = None
    node_count: int = 0
    config: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """
        Check that the snapshot describes a well-formed graph.

        Raises:
            SnapshotError: On a missing/misplaced entry point, a node missing
                           from a lower layer, or an edge to a node outside the layer
        """
        if not isinstance(self.node_count, int) or self.node_count < 0:
            raise SnapshotError(f"nodeCount must be a non-negative integer, got {self.node_count!r}")

        if not self.layers:
            if self.entry_point is not None:
                raise SnapshotError("Snapshot has an entry point but no layers")
            return

        if self.entry_point is None:
            raise SnapshotError("Snapshot has layers but no entry point")

        if self.entry_point not in self.layers[-1]:
            raise SnapshotError(
                f"Entry point '{self.entry_point}' is not in the top layer"
            )

        for level, layer in enumerate(self.layers):
            for key, neighbors in layer.items():
                if level > 0 and key not in self.layers[level - 1]:
                    raise SnapshotError(
                        f"Node '{key}' is in layer {level} but missing from layer {level - 1}"
                    )
                for neighbor_key in neighbors:
                    if neighbor_key not in layer:
                        raise SnapshotError(
                            f"Node '{key}' links to '{neighbor_key}' which is not in layer {level}"
                        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layers": [
                {key: dict(neighbors) for key, neighbors in layer.items()}
                for layer in self.layers
            ],
            "entryPoint": self.entry_point,
            "nodeCount": self.node_count,
            "config": dict(self.config),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IndexSnapshot":
        """
        Build and validate a snapshot from its JSON-compatible form.

        Raises:
            SnapshotError: If required fields are missing or malformed
        """
        try:
            layers = [
                {
                    str(key): {str(n): float(d) for n, d in neighbors.items()}
                    for key, neighbors in layer.items()
                }
                for layer in data["layers"]
            ]
            entry_point = data["entryPoint"]
            node_count = data["nodeCount"]
            config = dict(data.get("config", {}))
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise SnapshotError(f"Malformed index snapshot: {e}") from e

        unknown = set(config) - set(CONFIG_FIELDS)
        if unknown:
            raise SnapshotError(f"Unknown snapshot config fields: {sorted(unknown)}")

        snapshot = cls(
            layers=layers,
            entry_point=None if entry_point is None else str(entry_point),
            node_count=node_count,
            config=config,
        )
        snapshot.validate()
        return snapshot

    def to_json(self, filepath: str) -> None:
        """Save snapshot to a JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f)

    @classmethod
    def from_json(cls, filepath: str) -> "IndexSnapshot":
        """Load snapshot from a JSON file."""
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    def __repr__(self) -> str:
        return (
            f"IndexSnapshot(layers={len(self.layers)}, nodes={self.node_count}, "
            f"entry_point={self.entry_point!r})"
        )
