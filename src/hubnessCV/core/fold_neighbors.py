"""
Derivation of fold-restricted kNN sets from a larger neighbor graph.

Instead of recomputing kNN sets for every cross-validation fold, the neighbor
lists of a graph built once over a larger point set are projected onto the
fold's training subset. Walking a list in ascending-distance order and keeping
only subset members already yields correctly ordered neighbors; a row that runs
out of members before reaching k is completed by scanning the gaps between the
accepted positions in the subset. Source lists are ordered by distance with
ties broken by index, and subsets keep index order, so every candidate outside
a source list comes after its last neighbor in that order; the result equals a
brute-force kNN search on the restricted distance matrix, ties included.
"""

from typing import Optional, Tuple
import numpy as np

from .neighbor_graph import NeighborGraph


def position_map(members: np.ndarray, space_size: int) -> np.ndarray:
    """Map from an index space to positions in ``members`` (-1 for non-members)."""
    members = np.asarray(members, dtype=np.intp)
    position = np.full(space_size, -1, dtype=np.intp)
    position[members] = np.arange(len(members))
    return position


def insert_candidates(
    top_idx: np.ndarray,
    top_dist: np.ndarray,
    candidates: np.ndarray,
    candidate_dist: np.ndarray,
    k: int
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Insert candidates into a bounded ascending top-k list.

    The merged list is ordered by distance, equal distances by position, and
    cut at k. Candidates must not already be in the list.
    """
    if len(candidates) == 0:
        return top_idx, top_dist
    merged_idx = np.concatenate((top_idx, candidates))
    merged_dist = np.concatenate((top_dist, candidate_dist))
    order = np.lexsort((merged_idx, merged_dist))[:k]
    return merged_idx[order], merged_dist[order]


def fill_gaps(
    accepted_idx: np.ndarray,
    accepted_dist: np.ndarray,
    row_distances: np.ndarray,
    k: int,
    self_position: int = -1
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Complete a short neighbor list by scanning the unaccepted subset positions.

    The subset range is split into the intervals lying strictly between
    accepted positions plus the two open ends; every position in those gaps,
    except the query itself, is a candidate.

    Args:
        accepted_idx: Accepted neighbor positions, ascending by distance
        accepted_dist: Their distances
        row_distances: Distances from the query to every subset position
        k: Target list length
        self_position: Position of the query in the subset, or -1

    Returns:
        Neighbor positions and distances, at most k long
    """
    n = len(row_distances)
    bounds = np.concatenate(([-1], np.sort(accepted_idx), [n]))
    top_idx = np.asarray(accepted_idx, dtype=np.intp)
    top_dist = np.asarray(accepted_dist, dtype=np.float64)
    for lower, upper in zip(bounds[:-1], bounds[1:]):
        if upper - lower <= 1:
            continue
        candidates = np.arange(lower + 1, upper, dtype=np.intp)
        if lower < self_position < upper:
            candidates = candidates[candidates != self_position]
        top_idx, top_dist = insert_candidates(top_idx, top_dist, candidates, row_distances[candidates], k)
    return top_idx, top_dist


def project_neighbor_lists(
    source_indices: np.ndarray,
    source_distances: np.ndarray,
    position: np.ndarray,
    query_distances: np.ndarray,
    k: int,
    self_positions: Optional[np.ndarray] = None
) -> NeighborGraph:
    """
    Restrict neighbor lists to a subset, with gap-filling where they run short.

    Args:
        source_indices: Array (m, K) of neighbors of m queries in the source
            index space, ascending by distance
        source_distances: Matching distances
        position: Source index -> subset position map, -1 outside the subset
        query_distances: Array (m, s), distances from every query to every
            subset member
        k: Neighborhood size
        self_positions: Subset position of each query (-1 if the query is not
            a member); members never become their own neighbors

    Returns:
        NeighborGraph over subset positions, of width ``min(k, available)``
    """
    m, subset_size = query_distances.shape
    has_self = self_positions is not None and np.any(self_positions >= 0)
    k_eff = max(0, min(k, subset_size - 1 if has_self else subset_size))
    if m == 0 or k_eff == 0:
        return NeighborGraph.empty(m)

    mapped = position[source_indices] if source_indices.size else np.full((m, 0), -1, dtype=np.intp)
    keep = mapped >= 0
    if self_positions is not None:
        keep &= mapped != np.asarray(self_positions)[:, None]
    rank = np.cumsum(keep, axis=1)
    selected = keep & (rank <= k_eff)
    found = selected.sum(axis=1)

    out_idx = np.empty((m, k_eff), dtype=np.intp)
    out_dist = np.empty((m, k_eff), dtype=np.float64)

    complete = found == k_eff
    if np.any(complete):
        out_idx[complete] = mapped[complete][selected[complete]].reshape(-1, k_eff)
        out_dist[complete] = source_distances[complete][selected[complete]].reshape(-1, k_eff)

    for row in np.flatnonzero(~complete):
        own = int(self_positions[row]) if self_positions is not None else -1
        idx, dist = fill_gaps(
            mapped[row][selected[row]],
            source_distances[row][selected[row]],
            query_distances[row],
            k_eff,
            own
        )
        out_idx[row] = idx
        out_dist[row] = dist

    return NeighborGraph(out_idx, out_dist)


def derive_fold_graph(
    global_graph: NeighborGraph,
    train_indices: np.ndarray,
    fold_distances: np.ndarray,
    k: int
) -> NeighborGraph:
    """
    Exact kNN graph of a training fold, derived from the global graph.

    Args:
        global_graph: Neighbor graph over the whole dataset
        train_indices: Global indices of the training fold
        fold_distances: Square distance matrix of the training fold, in
            ``train_indices`` order
        k: Neighborhood size

    Returns:
        NeighborGraph over training-local positions
    """
    train_indices = np.asarray(train_indices, dtype=np.intp)
    position = position_map(train_indices, global_graph.size)
    return project_neighbor_lists(
        global_graph.indices[train_indices],
        global_graph.distances[train_indices],
        position,
        fold_distances,
        k,
        self_positions=np.arange(len(train_indices))
    )


def derive_test_neighbors(
    global_graph: NeighborGraph,
    test_indices: np.ndarray,
    train_indices: np.ndarray,
    test_to_train: np.ndarray,
    k: int
) -> NeighborGraph:
    """kNN of held-out points among the training fold, derived from the global graph."""
    test_indices = np.asarray(test_indices, dtype=np.intp)
    position = position_map(train_indices, global_graph.size)
    return project_neighbor_lists(
        global_graph.indices[test_indices],
        global_graph.distances[test_indices],
        position,
        test_to_train,
        k
    )


def derive_sub_graph(
    graph: NeighborGraph,
    member_positions: np.ndarray,
    sub_distances: np.ndarray,
    k: int
) -> NeighborGraph:
    """kNN graph of a subset (e.g. prototypes) of the points of ``graph``."""
    member_positions = np.asarray(member_positions, dtype=np.intp)
    position = position_map(member_positions, graph.size)
    return project_neighbor_lists(
        graph.indices[member_positions],
        graph.distances[member_positions],
        position,
        sub_distances,
        k,
        self_positions=np.arange(len(member_positions))
    )


def derive_member_neighbors(
    graph: NeighborGraph,
    member_positions: np.ndarray,
    point_to_member: np.ndarray,
    k: int
) -> NeighborGraph:
    """kNN among a subset for every point of ``graph``, members excluding themselves."""
    position = position_map(member_positions, graph.size)
    return project_neighbor_lists(
        graph.indices,
        graph.distances,
        position,
        point_to_member,
        k,
        self_positions=position
    )
