"""Configuration for memhnsw indexes.

Usage:
    from memhnsw import HNSW, HNSWConfig

    # Default config
    index = HNSW()

    # Custom config
    config = HNSWConfig(M=32, ef_construction=200, seed=42)
    index = HNSW(config=config)

    # From file
    config = HNSWConfig.from_json("my_config.json")
    index = HNSW(config=config)
"""

from typing import Any, Callable, Dict, Optional, Union
import json
from dataclasses import dataclass, asdict

from memhnsw.hnsw.distance import BUILTIN_DISTANCES, COSINE, COSINE_NORMALIZED


@dataclass
class HNSWConfig:
    """Configuration for an HNSW index.

    Graph parameters:
        M: Max neighbors per node on layers >= 1 (also sets the level distribution)
        M_max0: Max neighbors per node on layer 0 (default 2*M)
        ef_construction: Beam width while inserting
        ef_search: Default beam width while querying
        seed: Seed for level generation (None = non-deterministic)
        distance_function: "cosine", "cosine-normalized" or a callable
        dimension: Vector length (None = taken from the first insert)

    Storage:
        use_backing_store: Keep vectors in a durable store instead of memory
        store_path: sqlite file for the store (None = in-memory database)
        cache_size: Number of vectors kept resident when backed
    """

    # Graph parameters
    M: int = 16
    M_max0: Optional[int] = None
    ef_construction: int = 100
    ef_search: int = 50
    seed: Optional[int] = None
    distance_function: Union[str, Callable] = COSINE
    dimension: Optional[int] = None

    # Storage
    use_backing_store: bool = False
    store_path: Optional[str] = None
    cache_size: int = 10000

    # Metadata
    config_name: str = "default"

    def __post_init__(self):
        """Validate configuration."""
        if self.M < 2:
            raise ValueError("M must be >= 2")

        if self.M_max0 is None:
            self.M_max0 = 2 * self.M
        elif self.M_max0 < self.M:
            raise ValueError("M_max0 must be >= M")

        if self.ef_construction < 1:
            raise ValueError("ef_construction must be >= 1")

        if self.ef_search < 1:
            raise ValueError("ef_search must be >= 1")

        if self.seed is not None and (not isinstance(self.seed, int) or self.seed < 0):
            raise ValueError("seed must be a non-negative integer")

        if self.dimension is not None and self.dimension < 1:
            raise ValueError("dimension must be >= 1")

        if self.cache_size < 0:
            raise ValueError("cache_size must be >= 0")

        if isinstance(self.distance_function, str):
            if self.distance_function not in BUILTIN_DISTANCES:
                raise ValueError(
                    f"distance_function must be one of {sorted(BUILTIN_DISTANCES)} or a callable"
                )
        elif not callable(self.distance_function):
            raise ValueError("distance_function must be a string or callable")

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        if callable(self.distance_function):
            raise ValueError("Config with a custom distance function cannot be serialized")
        return asdict(self)

    def to_json(self, filepath: str) -> None:
        """Save configuration to JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'HNSWConfig':
        """Load configuration from dictionary."""
        return cls(**config_dict)

    @classmethod
    def from_json(cls, filepath: str) -> 'HNSWConfig':
        """Load configuration from JSON file."""
        with open(filepath, 'r') as f:
            config_dict = json.load(f)
        return cls.from_dict(config_dict)

    def __repr__(self) -> str:
        """String representation."""
        distance = (
            self.distance_function
            if isinstance(self.distance_function, str)
            else getattr(self.distance_function, "__name__", "custom")
        )
        return (
            f"HNSWConfig("
            f"{self.config_name}, "
            f"M={self.M}, "
            f"ef_construction={self.ef_construction}, "
            f"distance={distance}, "
            f"seed={self.seed})"
        )


# Preset configurations

def get_default_config() -> HNSWConfig:
    """Default configuration (cosine distance, unseeded)."""
    return HNSWConfig(config_name="default")


def get_normalized_config(seed: int = 123) -> HNSWConfig:
    """Configuration for unit-length embeddings.

    Uses the cheaper cosine-normalized metric, so vectors must be normalized
    before insert and query. Seeded so rebuilding from the same feed produces
    the same graph.
    """
    return HNSWConfig(
        config_name="normalized",
        distance_function=COSINE_NORMALIZED,
        seed=seed,
    )
