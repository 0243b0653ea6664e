"""
HNSW index: incremental inserts, top-k queries and snapshot export/import.
"""

import logging
import warnings
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union
import numpy as np
import numpy.typing as npt

from memhnsw.config import HNSWConfig, get_default_config
from memhnsw.errors import (
    BackingStoreError,
    DimensionMismatchError,
    DuplicateKeyError,
    EmptyIndexError,
    InvalidVectorError,
    PartialBatchError,
    SnapshotError,
    UnreachableNodeError,
    UnreachableNodeWarning,
)
from memhnsw.graph_validator import GraphValidator
from memhnsw.hnsw.builder import HNSWBuilder
from memhnsw.hnsw.distance import BUILTIN_DISTANCES, DistanceFunction, get_distance_function
from memhnsw.hnsw.graph import GraphLayer, HNSWGraph
from memhnsw.hnsw.searcher import HNSWSearcher
from memhnsw.hnsw.utils import LevelGenerator
from memhnsw.snapshot import CONFIG_FIELDS, IndexSnapshot
from memhnsw.vector_store import NodeVectors, SQLiteVectorStore, VectorBackingStore

logger = logging.getLogger(__name__)

Vector = npt.NDArray[np.float32]
VectorLike = Union[Vector, Sequence[float]]


class HNSW:
    """
    Approximate nearest-neighbor index built on an HNSW graph.

    This is the main entry point for memhnsw. Nodes are added one at a time
    (insert) or in batches (bulk_insert) and can be queried at any point.
    The graph can be exported to an IndexSnapshot and loaded into a fresh
    index, after which inserts resume where they left off.

    IMPORTANT: This library operates on pre-embedded vectors. Producing the
    embeddings is the caller's responsibility, as is choosing keys.

    Vectors are kept in memory unless a backing store is configured, in which
    case only the graph stays resident and vectors are read on demand.

    An index has a single writer. Inserts must not run concurrently with each
    other or with queries; serialize access externally if several threads
    share one index.

    Example:
        >>> index = HNSW(distance_function="cosine", seed=42)
        >>> index.insert("doc-1", [0.1, 0.9, 0.3])
        >>> index.bulk_insert(["doc-2", "doc-3"], [[0.2, 0.8, 0.1], [0.9, 0.1, 0.0]])
        >>> index.query([0.1, 0.9, 0.2], top_k=2)
        [{'key': 'doc-1', 'distance': ...}, {'key': 'doc-2', 'distance': ...}]
    """

    def __init__(
        self,
        distance_function: Optional[Union[str, Callable]] = None,
        M: Optional[int] = None,
        ef_construction: Optional[int] = None,
        ef_search: Optional[int] = None,
        seed: Optional[int] = None,
        dimension: Optional[int] = None,
        backing_store: Optional[VectorBackingStore] = None,
        config: Optional[HNSWConfig] = None,
    ) -> None:
        """
        Initialize the index.

        Args:
            distance_function: "cosine", "cosine-normalized" or a callable (a, b) -> float
            M: Max neighbors per node on upper layers (layer 0 allows 2*M by default)
            ef_construction: Beam width while inserting (higher = better graph, slower)
            ef_search: Default beam width while querying (higher = better recall, slower)
            seed: Seed for level generation; fixes the graph for a given insert order
            dimension: Vector length (default: taken from the first insert)
            backing_store: Durable vector store. Overrides config.use_backing_store.
            config: HNSWConfig object. Explicit arguments above take precedence.
        """
        if config is None:
            config = get_default_config()

        # Explicit params take precedence over the config
        overrides = {
            "distance_function": distance_function,
            "M": M,
            "ef_construction": ef_construction,
            "ef_search": ef_search,
            "seed": seed,
            "dimension": dimension,
        }
        overrides = {name: value for name, value in overrides.items() if value is not None}
        if overrides:
            settings = {
                name: getattr(config, name) for name in config.__dataclass_fields__
            }
            settings.update(overrides)
            # M_max0 follows M unless it was set explicitly
            if "M" in overrides and config.M_max0 == 2 * config.M:
                settings["M_max0"] = None
            config = HNSWConfig(**settings)

        self.config = config

        if backing_store is None and config.use_backing_store:
            backing_store = SQLiteVectorStore(config.store_path or ":memory:")

        self._vectors = NodeVectors(backing_store, cache_size=config.cache_size)
        self._distance: DistanceFunction = get_distance_function(config.distance_function)
        self._dimension: Optional[int] = config.dimension
        self._node_count = 0

        self._build_components()

    def _build_components(self) -> None:
        """(Re)create graph, level generator, searcher and builder from self.config."""
        self._graph = HNSWGraph(M=self.config.M, M_max0=self.config.M_max0)
        self._levels = LevelGenerator(M=self.config.M, seed=self.config.seed)
        self._searcher = HNSWSearcher(
            graph=self._graph,
            vectors=self._vectors,
            distance=self._distance,
            ef_search=self.config.ef_search,
        )
        self._builder = HNSWBuilder(
            graph=self._graph,
            vectors=self._vectors,
            distance=self._distance,
            searcher=self._searcher,
            ef_construction=self.config.ef_construction,
        )

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    @property
    def distance_function(self) -> DistanceFunction:
        return self._distance

    @property
    def graph(self) -> HNSWGraph:
        """The underlying graph (read-only use)."""
        return self._graph

    @property
    def graph_layers(self) -> List[GraphLayer]:
        return self._graph.layers

    @property
    def entry_point(self) -> Optional[str]:
        return self._graph.entry_point

    @property
    def node_count(self) -> int:
        return self._node_count

    @property
    def seed(self) -> int:
        """Seed in use (generated once if none was configured)."""
        return self._levels.seed

    def insert(self, key: str, vector: VectorLike, level: Optional[int] = None) -> None:
        """
        Insert a single node.

        Args:
            key: Unique key for the node
            vector: Vector of the index's dimension
            level: Force the node's top layer instead of drawing it (mainly for tests)

        Raises:
            DuplicateKeyError: If the key is already in the index
            DimensionMismatchError: If the vector length is wrong
            BackingStoreError: If the vector cannot be stored; the graph is left unchanged
        """
        self._check_key(key)
        if key in self._graph:
            raise DuplicateKeyError(key)

        prepared = self._prepare_vector(vector, self._dimension)
        self._insert_prepared(key, prepared, level, store_vector=True)

    def bulk_insert(
        self,
        keys: Sequence[str],
        vectors: Union[Vector, Sequence[VectorLike]],
        levels: Optional[Sequence[Optional[int]]] = None,
    ) -> None:
        """
        Insert many nodes, writing their vectors to the backing store in one call.

        The whole batch is validated before anything is written. With a backing
        store, a failed batch write raises before any node enters the graph.
        Nodes are then linked in order; a store read failing mid-batch leaves
        the linked prefix in place and raises PartialBatchError naming it.

        Args:
            keys: Unique keys, one per vector
            vectors: Vectors (a 2D array or a sequence of vectors)
            levels: Optional forced levels, aligned with keys (None entries are drawn)

        Raises:
            ValueError: If keys, vectors and levels differ in length
            DuplicateKeyError: If a key repeats or is already in the index
            DimensionMismatchError: If any vector length is wrong
            InvalidVectorError: If any vector is not a 1D numeric array
            BackingStoreError: If the batch write fails
            PartialBatchError: If a store read fails while linking the batch
        """
        keys = list(keys)
        entries = self._prepare_batch(keys, vectors)

        if levels is None:
            levels = [None] * len(keys)
        elif len(levels) != len(keys):
            raise ValueError(
                f"Number of levels ({len(levels)}) doesn't match number of keys ({len(keys)})"
            )
        elif any(level is not None and level < 0 for level in levels):
            raise ValueError("levels must be >= 0")

        seen = set()
        for key in keys:
            if key in self._graph or key in seen:
                raise DuplicateKeyError(key)
            seen.add(key)

        if not entries:
            return

        backed = self._vectors.is_backed
        if backed:
            self._vectors.bulk_put(entries)

        committed = []
        with self._vectors.pinned(entries):
            for (key, prepared), level in zip(entries, levels):
                try:
                    self._insert_prepared(key, prepared, level, store_vector=not backed)
                except BackingStoreError as e:
                    remaining = [k for k, _ in entries[len(committed):]]
                    raise PartialBatchError(committed, remaining, e) from e
                committed.append(key)

        logger.info(f"Bulk inserted {len(entries)} nodes (index size {self.size()})")

    def bulk_insert_skip_index(
        self,
        keys: Sequence[str],
        vectors: Union[Vector, Sequence[VectorLike]],
        strict: bool = True,
    ) -> None:
        """
        Store vectors for nodes that already exist in a loaded graph, without indexing.

        Use after load_index(): the snapshot's graph is trusted as-is and only
        the raw vectors need to be backed in. No search or insert runs.

        WARNING: A key that is not part of the loaded graph gets a stored vector
        but no graph membership, so no query can ever return it. With strict=True
        (default) such keys raise UnreachableNodeError and nothing is stored.
        With strict=False they are stored anyway and an UnreachableNodeWarning
        is emitted.

        Raises:
            UnreachableNodeError: If strict and any key is not in the graph
            DimensionMismatchError: If any vector length is wrong
            BackingStoreError: If the store fails
        """
        keys = list(keys)
        entries = self._prepare_batch(keys, vectors)

        missing = [key for key in keys if key not in self._graph]
        if missing:
            if strict:
                raise UnreachableNodeError(missing)

            logger.warning(
                f"Storing vectors for {len(missing)} key(s) absent from the graph; "
                f"they will never be returned by a query"
            )
            warnings.warn(
                f"{len(missing)} key(s) are not in the loaded graph and will be unreachable",
                UnreachableNodeWarning,
                stacklevel=2,
            )

        self._vectors.bulk_put(entries)

    def query(
        self,
        vector: VectorLike,
        top_k: int = 10,
        ef: Optional[int] = None,
        max_distance: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """
        Find the approximate top_k nearest nodes.

        Args:
            vector: Query vector of the index's dimension
            top_k: Number of results to return
            ef: Beam width at layer 0 for this query (default config ef_search;
                never below top_k)
            max_distance: Drop results farther than this. Applied after ranking,
                          so it only shortens the list and never changes the search.

        Returns:
            List of {"key": str, "distance": float}, closest first

        Raises:
            EmptyIndexError: If nothing has been inserted
            DimensionMismatchError: If the vector length is wrong
            BackingStoreError: If a vector read fails
        """
        if top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}")

        if self._graph.size() == 0:
            raise EmptyIndexError("Cannot query an empty index")

        prepared = self._prepare_vector(vector, self._dimension)
        results = self._searcher.search(prepared, k=top_k, ef_search=ef)

        formatted = [{"key": key, "distance": float(dist)} for dist, key in results]

        if max_distance is not None:
            formatted = [r for r in formatted if r["distance"] <= max_distance]

        return formatted

    def export_index(self) -> IndexSnapshot:
        """
        Export the graph topology and configuration.

        Vectors are not included; restore them with bulk_insert_skip_index()
        or by reopening the same backing store.
        """
        config = {
            "M": self.config.M,
            "MMax0": self.config.M_max0,
            "efConstruction": self.config.ef_construction,
            "efSearch": self.config.ef_search,
            "seed": self._levels.seed,
            "distanceFunction": self._distance.name,
            "dimension": self._dimension,
        }

        snapshot = IndexSnapshot(
            layers=[layer.to_dict() for layer in self._graph.layers],
            entry_point=self._graph.entry_point,
            node_count=self._node_count,
            config=config,
        )

        logger.info(f"Exported index snapshot: {self._graph.size()} nodes")
        return snapshot

    def load_index(self, snapshot: Union[IndexSnapshot, Dict[str, Any]]) -> None:
        """
        Replace the whole graph with a snapshot.

        Nothing is merged: existing nodes are dropped and resident vectors are
        cleared (an external backing store is left as it is). Configuration,
        including a built-in distance, is taken from the snapshot. A custom
        distance cannot be serialized, so the index must already hold it.

        Raises:
            SnapshotError: If the snapshot is malformed
        """
        if isinstance(snapshot, IndexSnapshot):
            snapshot.validate()
        else:
            snapshot = IndexSnapshot.from_dict(snapshot)

        settings = {
            name: getattr(self.config, name) for name in self.config.__dataclass_fields__
        }
        for snapshot_key, field_name in CONFIG_FIELDS.items():
            if snapshot_key in snapshot.config:
                settings[field_name] = snapshot.config[snapshot_key]
        if "M" in snapshot.config and "MMax0" not in snapshot.config:
            settings["M_max0"] = None

        distance = self._distance
        settings["distance_function"] = self.config.distance_function
        distance_name = snapshot.config.get("distanceFunction")
        if distance_name is not None and distance_name != distance.name:
            if distance_name in BUILTIN_DISTANCES:
                distance = get_distance_function(distance_name)
                settings["distance_function"] = distance_name
            elif distance.is_builtin:
                raise SnapshotError(
                    f"Snapshot uses custom distance '{distance_name}'; create the index "
                    f"with that distance function before loading"
                )
            else:
                logger.warning(
                    f"Snapshot was built with distance '{distance_name}', "
                    f"keeping this index's '{distance.name}'"
                )

        try:
            config = HNSWConfig(**settings)
        except (TypeError, ValueError) as e:
            raise SnapshotError(f"Invalid snapshot config: {e}") from e

        self.config = config
        self._distance = distance
        self._dimension = config.dimension
        self._vectors.clear_resident()
        self._build_components()

        for level, layer_data in enumerate(snapshot.layers):
            self._graph.ensure_layers(level)
            self._graph.layers[level] = GraphLayer.from_dict(layer_data)
        self._graph.entry_point = snapshot.entry_point
        self._node_count = snapshot.node_count

        logger.info(
            f"Loaded index snapshot: {self._graph.size()} nodes, "
            f"{len(self._graph.layers)} layers"
        )

    def save(self, filepath: str) -> None:
        """
        Save the graph snapshot as JSON.

        Args:
            filepath: Path to write (e.g., "index.json")
        """
        self.export_index().to_json(filepath)

    @classmethod
    def load(
        cls,
        filepath: str,
        backing_store: Optional[VectorBackingStore] = None,
        distance_function: Optional[Callable] = None,
    ) -> "HNSW":
        """
        Load an index from a JSON snapshot.

        Args:
            filepath: Path written by save()
            backing_store: Store already holding the vectors, if any
            distance_function: Required when the index used a custom metric

        Returns:
            Index with the loaded graph. Without a backing store, vectors still
            have to be supplied via bulk_insert_skip_index().
        """
        snapshot = IndexSnapshot.from_json(filepath)
        index = cls(distance_function=distance_function, backing_store=backing_store)
        index.load_index(snapshot)
        return index

    def get_vector(self, key: str) -> Vector:
        """
        Return the stored vector of a node.

        Raises:
            KeyError: If the key is not in the index
        """
        if key not in self._graph:
            raise KeyError(key)
        return self._vectors.get(key)

    def validate(self) -> bool:
        """Check graph invariants (symmetric edges, degree caps, layer membership)."""
        return GraphValidator(self._graph).is_valid()

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get statistics about the index.

        Returns:
            Dictionary with configuration and graph shape metrics
        """
        stats = {
            "dimension": self._dimension,
            "distance_function": self._distance.name,
            "M": self.config.M,
            "M_max0": self.config.M_max0,
            "ef_construction": self.config.ef_construction,
            "ef_search": self.config.ef_search,
            "insert_count": self._node_count,
            "entry_point": self._graph.entry_point,
            "backed": self._vectors.is_backed,
        }
        stats.update(GraphValidator(self._graph).get_graph_statistics())
        return stats

    def size(self) -> int:
        """
        Get the number of nodes in the graph.

        Returns:
            Number of indexed nodes
        """
        return self._graph.size()

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        return key in self._graph

    def __repr__(self) -> str:
        return (
            f"HNSW(nodes={self.size()}, layers={len(self._graph.layers)}, "
            f"distance={self._distance.name!r}, M={self.config.M})"
        )

    def _insert_prepared(
        self, key: str, vector: Vector, level: Optional[int], store_vector: bool
    ) -> None:
        if level is None:
            level = self._levels.level_for(self._node_count)
        elif level < 0:
            raise ValueError(f"level must be >= 0, got {level}")

        self._builder.insert(key, vector, level, store_vector=store_vector)

        if self._dimension is None:
            self._dimension = len(vector)
        self._node_count += 1

        logger.debug(f"Inserted '{key}' at level {level}")

    def _prepare_batch(
        self, keys: List[str], vectors: Union[Vector, Sequence[VectorLike]]
    ) -> List[Tuple[str, Vector]]:
        if len(keys) != len(vectors):
            raise ValueError(
                f"Number of keys ({len(keys)}) doesn't match number of vectors ({len(vectors)})"
            )

        expected = self._dimension
        entries = []
        for key, vector in zip(keys, vectors):
            self._check_key(key)
            prepared = self._prepare_vector(vector, expected)
            expected = len(prepared)
            entries.append((key, prepared))

        return entries

    @staticmethod
    def _check_key(key: str) -> None:
        if not isinstance(key, str):
            raise TypeError(f"Keys must be str, got {type(key).__name__}")

    @staticmethod
    def _prepare_vector(vector: VectorLike, expected: Optional[int]) -> Vector:
        try:
            prepared = np.asarray(vector, dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise InvalidVectorError(f"Vector is not numeric: {e}") from e

        if prepared.ndim != 1:
            raise InvalidVectorError(f"Expected a 1D vector, got shape {prepared.shape}")

        if expected is not None and len(prepared) != expected:
            raise DimensionMismatchError(expected=expected, actual=len(prepared))

        return prepared
