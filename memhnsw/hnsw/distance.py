"""
Distance and similarity metrics for vector comparisons.

This module provides functions to measure how similar or different two vectors are.
In vector databases, we use these metrics to find the most similar items to a query.

Three kinds of metric are supported:
- "cosine": 1 - cosine similarity, valid for vectors of any magnitude
- "cosine-normalized": 1 - dot product, assumes inputs are already unit length
- custom: any callable (a, b) -> float supplied by the caller

All of them are wrapped in a DistanceFunction so the search and insert code
calls one object and never checks which kind it is holding.
"""

from typing import Callable, Optional, Union
import numpy as np
import numpy.typing as npt

from memhnsw.errors import DimensionMismatchError

Vector = npt.NDArray[np.float32]

COSINE = "cosine"
COSINE_NORMALIZED = "cosine-normalized"


def _check_dimensions(v1: Vector, v2: Vector) -> None:
    if len(v1) != len(v2):
        raise DimensionMismatchError(expected=len(v1), actual=len(v2))


def cosine_similarity(v1: Vector, v2: Vector) -> float:
    """
    Compute cosine similarity between two vectors.

    Cosine similarity measures the cosine of the angle between two vectors.
    It ranges from -1 (opposite directions) to 1 (same direction).
    For normalized vectors, this is equivalent to their dot product.

    Args:
        v1: First vector (1D numpy array)
        v2: Second vector (1D numpy array)

    Returns:
        Similarity score between -1 and 1 (higher means more similar)

    Raises:
        DimensionMismatchError: If the vectors have different lengths
    """
    _check_dimensions(v1, v2)

    dot_product = np.dot(v1, v2)
    norm_v1 = np.linalg.norm(v1)
    norm_v2 = np.linalg.norm(v2)

    # Zero vectors have no direction
    if norm_v1 == 0.0 or norm_v2 == 0.0:
        return 0.0

    return float(dot_product / (norm_v1 * norm_v2))


def cosine_distance(v1: Vector, v2: Vector) -> float:
    """
    Compute cosine distance between two vectors.

    Cosine distance is defined as 1 - cosine_similarity, converting similarity
    to a distance metric. It ranges from 0 (identical) to 2 (opposite directions).

    Example:
        >>> v1 = np.array([1.0, 0.0, 0.0])
        >>> cosine_distance(v1, v1)
        0.0
    """
    return 1.0 - cosine_similarity(v1, v2)


def cosine_normalized_distance(v1: Vector, v2: Vector) -> float:
    """
    Cosine distance for vectors that are already unit length.

    Skips the norm computation and returns 1 - dot(v1, v2). Passing vectors
    that are not normalized gives wrong distances without any error, so the
    caller must normalize first (see normalize_vector).
    """
    _check_dimensions(v1, v2)
    return 1.0 - float(np.dot(v1, v2))


def normalize_vector(v: Vector) -> Vector:
    """
    Normalize a vector to unit length (L2 norm = 1).

    Example:
        >>> v = np.array([3.0, 4.0])
        >>> np.linalg.norm(normalize_vector(v))
        1.0
    """
    norm = np.linalg.norm(v)

    if norm == 0.0:
        return v

    return v / norm


class DistanceFunction:
    """
    A named distance metric.

    The name is what gets written into index snapshots. Built-in metrics are
    looked up by name again on load; custom callables cannot be serialized,
    so a loading index has to be given the same callable.
    """

    def __init__(self, name: str, func: Callable[[Vector, Vector], float]) -> None:
        self.name = name
        self.func = func

    @property
    def is_builtin(self) -> bool:
        return self.name in BUILTIN_DISTANCES

    def __call__(self, v1: Vector, v2: Vector) -> float:
        return float(self.func(v1, v2))

    def __repr__(self) -> str:
        return f"DistanceFunction(name={self.name!r})"


BUILTIN_DISTANCES = {
    COSINE: cosine_distance,
    COSINE_NORMALIZED: cosine_normalized_distance,
}


def get_distance_function(
    distance: Union[str, Callable[[Vector, Vector], float], DistanceFunction],
    name: Optional[str] = None,
) -> DistanceFunction:
    """
    Resolve a metric name or callable into a DistanceFunction.

    Args:
        distance: "cosine", "cosine-normalized", a callable, or an existing
                  DistanceFunction (returned unchanged)
        name: Identifier for a custom callable (default: its __name__)

    Raises:
        ValueError: If a string does not name a built-in metric
    """
    if isinstance(distance, DistanceFunction):
        return distance

    if isinstance(distance, str):
        if distance not in BUILTIN_DISTANCES:
            raise ValueError(
                f"Unknown distance function '{distance}', "
                f"expected one of {sorted(BUILTIN_DISTANCES)} or a callable"
            )
        return DistanceFunction(distance, BUILTIN_DISTANCES[distance])

    if callable(distance):
        if name is None:
            name = getattr(distance, "__name__", "custom")
        return DistanceFunction(name, distance)

    raise ValueError(f"distance_function must be a string or callable, got {type(distance)!r}")
