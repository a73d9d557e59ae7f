"""
conceptgraph: a self-maintaining in-memory knowledge graph.

Concepts are typed nodes with deterministic embeddings; relations are
directed, typed, weighted edges. On top of the stores sit:
- a Semantic Index for free-text search
- a Pathfinder for bounded multi-hop connections
- a Cluster Manager that keeps themed groups well connected
- an Inference Engine deriving new edges from rules
- a Maintenance Scheduler that periodically infers, prunes, reinforces and
  rebalances the graph

KnowledgeGraph is the entry point.
"""

__version__ = "0.1.0"

from conceptgraph.config import GraphConfig
from conceptgraph.engine import KnowledgeGraph
from conceptgraph.errors import (
    DuplicateEdge,
    DuplicateId,
    GraphError,
    InvalidStrength,
    InvalidWeight,
    MaintenancePhaseFailure,
    UnknownNode,
)
from conceptgraph.generators import bootstrap_foundational_knowledge, create_default_graph

__all__ = [
    "KnowledgeGraph",
    "GraphConfig",
    "GraphError",
    "UnknownNode",
    "DuplicateId",
    "DuplicateEdge",
    "InvalidWeight",
    "InvalidStrength",
    "MaintenancePhaseFailure",
    "bootstrap_foundational_knowledge",
    "create_default_graph",
]
