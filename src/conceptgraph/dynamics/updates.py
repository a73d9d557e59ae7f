"""
Structural update rules applied by the maintenance scheduler.

Pruning (decay side):
    remove e  if  strength(e) < θ_s  and  traversals(e) < θ_t
    at most `batch_size` edges per call, weakest first

Reinforcement (Hebbian side):
    strength(e) ← min(1, strength(e) · η)  if  traversals(e) > θ_r
"""

import logging
from typing import List, Tuple

from conceptgraph.memory.relations import Edge, EdgeKey, RelationStore

logger = logging.getLogger(__name__)


def find_prune_candidates(relations: RelationStore, threshold: float = 0.1,
                          min_traversals: int = 2) -> List[Edge]:
    """
    Edges eligible for removal, weakest first (insertion order breaks ties).

    An edge traversed at least `min_traversals` times is never a candidate.
    """
    candidates = [
        edge for edge in relations.edges()
        if edge.strength < threshold and edge.traversal_count < min_traversals
    ]
    return sorted(candidates, key=lambda e: e.strength)


def prune_weak_edges(relations: RelationStore, threshold: float = 0.1,
                     min_traversals: int = 2, batch_size: int = 3) -> List[Edge]:
    """
    Remove weak, rarely used edges.

    Args:
        relations: Relation Store to prune
        threshold: Strength below which an edge may be removed
        min_traversals: Traversal count that protects an edge
        batch_size: Maximum edges removed in this call

    Returns:
        List of removed edges
    """
    removed = []
    for edge in find_prune_candidates(relations, threshold, min_traversals)[:batch_size]:
        removed.append(relations.remove_edge(edge.key))

    if removed:
        logger.debug(f"Pruned {len(removed)} weak edges")
    return removed


def reinforce_frequent_edges(relations: RelationStore, traversal_threshold: int = 10,
                             factor: float = 1.1) -> List[Tuple[EdgeKey, float, float]]:
    """
    Strengthen frequently traversed edges.

    Edges already at full strength are left alone.

    Args:
        relations: Relation Store to update
        traversal_threshold: Edges traversed more often than this are reinforced
        factor: Multiplicative factor, result clamped to 1.0

    Returns:
        List of (key, old_strength, new_strength)
    """
    changes = []
    for edge in relations.edges():
        if edge.traversal_count <= traversal_threshold or edge.strength >= 1.0:
            continue
        old = edge.strength
        new = relations.reinforce(edge.key, factor)
        changes.append((edge.key, old, new))

    if changes:
        logger.debug(f"Reinforced {len(changes)} frequently traversed edges")
    return changes
