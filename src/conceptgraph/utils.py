"""
Metrics and analysis helpers for the knowledge graph.

Structural metrics recomputed on every maintenance tick:

    traversal_efficiency = min(1, Σ traversals / (10 · |E|))   (0.9 before any traversal)
    semantic_coverage    = min(1, |index tokens| / (3 · |V|))
    inference_rate       = |inferred edges| / |E|
"""

from typing import Dict, Optional

import numpy as np

from conceptgraph.memory.relations import RelationStore


BASELINE_TRAVERSAL_EFFICIENCY = 0.9


def compute_metrics(relations: RelationStore, index=None, clusters=None) -> Dict[str, float]:
    """
    Compute graph metrics for monitoring and reports.

    Metrics include:
    - Counts: nodes, edges, inferred edges, clusters, index tokens
    - traversal_efficiency: how much of the edge set is actually used
    - semantic_coverage: index tokens per node, saturating at 3
    - inference_rate: share of rule-derived edges
    - density: proportion of connected node pairs
    - mean_degree: average summed strength per node
    - mean_strength: average edge strength

    Args:
        relations: Relation Store (its Entity Store supplies node counts)
        index: Optional Semantic Index
        clusters: Optional Cluster Manager

    Returns:
        dict: Computed metrics
    """
    num_nodes = len(relations.entities)
    edges = relations.edges()
    num_edges = len(edges)

    strengths = np.array([e.strength for e in edges]) if edges else np.empty(0)
    traversals = sum(e.traversal_count for e in edges)
    inferred = sum(1 for e in edges if e.inferred)
    token_count = index.token_count if index is not None else 0

    if traversals == 0 or num_edges == 0:
        traversal_efficiency = BASELINE_TRAVERSAL_EFFICIENCY
    else:
        traversal_efficiency = min(1.0, traversals / (num_edges * 10))

    semantic_coverage = min(1.0, token_count / (num_nodes * 3)) if num_nodes else 0.0
    inference_rate = inferred / num_edges if num_edges else 0.0

    degrees = relations.get_degree_distribution() if num_nodes else np.empty(0)

    return {
        'nodes': num_nodes,
        'edges': num_edges,
        'inferred_edges': inferred,
        'clusters': len(clusters) if clusters is not None else 0,
        'index_tokens': token_count,
        'total_traversals': traversals,
        'traversal_efficiency': float(traversal_efficiency),
        'semantic_coverage': float(semantic_coverage),
        'inference_rate': float(inference_rate),
        'density': float(relations.get_density()),
        'mean_degree': float(np.mean(degrees)) if len(degrees) else 0.0,
        'mean_strength': float(np.mean(strengths)) if len(strengths) else 0.0,
    }


def analyze_edge_distribution(relations: RelationStore, num_bins: int = 10,
                              inferred: Optional[bool] = None) -> Dict:
    """
    Analyze distribution of edge strengths.

    Returns histogram and statistics of edge strengths, useful for watching
    pruning and reinforcement shape the graph.

    Args:
        relations: Relation Store
        num_bins: Number of histogram bins over [0, 1]
        inferred: Only observed (False) or only inferred (True) edges; both when None

    Returns:
        dict: Statistics including histogram, mean, std, etc.
    """
    strengths = np.array([
        e.strength for e in relations.edges()
        if inferred is None or e.inferred == inferred
    ])

    if len(strengths) == 0:
        return {
            'hist': (np.zeros(num_bins, dtype=int), np.linspace(0.0, 1.0, num_bins + 1)),
            'mean': 0.0,
            'std': 0.0,
            'min': 0.0,
            'max': 0.0,
            'count': 0,
        }

    hist, bin_edges = np.histogram(strengths, bins=num_bins, range=(0.0, 1.0))

    return {
        'hist': (hist, bin_edges),
        'mean': float(np.mean(strengths)),
        'std': float(np.std(strengths)),
        'min': float(np.min(strengths)),
        'max': float(np.max(strengths)),
        'count': int(len(strengths)),
    }
