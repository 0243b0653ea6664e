"""
Utility functions for HNSW graph construction and maintenance.

This module provides helper functions used during HNSW index building:
- Layer assignment: a seeded generator deciding which layers a new node appears in
- Neighbor selection: the diversity heuristic choosing which edges to keep

The layer assignment uses an exponentially decaying distribution, so most nodes
only live in layer 0 and progressively fewer reach the upper layers. The generator
is seeded so the same seed and insertion order always rebuild the same graph.
"""

from typing import Callable, List, Optional, Tuple
import numpy as np

# (distance to target, node key)
Candidate = Tuple[float, str]


class LevelGenerator:
    """
    Seeded source of node levels.

    Formula (Malkov & Yashunin 2016): level = floor(-ln(U) * mL), mL = 1/ln(M),
    with U drawn from (0, 1]. For M=16 about 93.75% of nodes land on layer 0,
    6.25% reach layer 1 and 0.39% reach layer 2.

    The level of the n-th inserted node is derived from (seed, n) alone, so the
    index only has to remember how many nodes it has inserted to keep producing
    the same sequence after a snapshot restore. A failed insert does not use up
    a draw.
    """

    def __init__(self, M: int = 16, seed: Optional[int] = None) -> None:
        if M < 2:
            raise ValueError(f"M must be >= 2 to derive a level multiplier, got {M}")

        # Unseeded generators pick fresh entropy once, and keep it so that a
        # snapshot of the index records a seed that reproduces its levels
        if seed is None:
            seed = np.random.SeedSequence().entropy

        self.M = M
        self.seed = seed
        self.level_multiplier = 1.0 / np.log(M)

    def level_for(self, counter: int) -> int:
        """Level of the node inserted when `counter` nodes were already in the index."""
        rng = np.random.default_rng([self.seed, counter])

        # random() is in [0, 1); flip it so log() never sees 0
        random_value = 1.0 - rng.random()
        return int(-np.log(random_value) * self.level_multiplier)


def select_neighbors_heuristic(
    candidates: List[Candidate],
    M: int,
    distance_between: Callable[[str, str], float],
) -> List[Candidate]:
    """
    Select up to M neighbors with the diversity heuristic (HNSW paper, Algorithm 4).

    A candidate is accepted only if it is closer to the target than to every
    neighbor accepted before it. This keeps the M slots from piling up on a
    cluster of near-duplicates and preserves long-range links. If fewer than M
    pass, the closest rejected candidates fill the remaining slots
    (keepPrunedConnections).

    Args:
        candidates: (distance_to_target, key) pairs
        M: Maximum number of neighbors to select
        distance_between: Distance between two candidate keys

    Returns:
        Selected (distance_to_target, key) pairs, closest first. Ties on distance
        are ordered by key.
    """
    if len(candidates) == 0:
        return []

    ordered = sorted(candidates)

    # With backfill every candidate would be taken anyway
    if len(ordered) <= M:
        return ordered

    selected: List[Candidate] = []
    rejected: List[Candidate] = []

    for candidate_dist, candidate_key in ordered:
        if len(selected) >= M:
            break

        is_diverse = True
        for _, selected_key in selected:
            if distance_between(candidate_key, selected_key) <= candidate_dist:
                is_diverse = False
                break

        if is_diverse:
            selected.append((candidate_dist, candidate_key))
        else:
            rejected.append((candidate_dist, candidate_key))

    if len(selected) < M:
        selected.extend(rejected[: M - len(selected)])
        selected.sort()

    return selected
