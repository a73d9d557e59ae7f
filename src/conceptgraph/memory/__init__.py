"""Entity, relation and index stores of the knowledge graph."""

from conceptgraph.memory.entities import EntityStore, Node
from conceptgraph.memory.index import SearchResult, SemanticIndex
from conceptgraph.memory.properties import EdgeProperties, NodeProperties
from conceptgraph.memory.relations import Edge, EdgeKey, RelationStore

__all__ = [
    "Node",
    "EntityStore",
    "Edge",
    "EdgeKey",
    "RelationStore",
    "NodeProperties",
    "EdgeProperties",
    "SemanticIndex",
    "SearchResult",
]
