"""
Entity Store: concept nodes with embeddings and access statistics.

Nodes are created once and never deleted. The embedding is computed when the
node is added and is only recomputed on an explicit reembed() request.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Set

import numpy as np

from conceptgraph.errors import DuplicateId, InvalidNodeSpec, InvalidWeight, UnknownNode
from conceptgraph.ingestion.embeddings import EmbeddingService
from conceptgraph.memory.properties import NodeProperties


@dataclass
class Node:
    """
    A concept in the graph.

    Attributes:
        id: Unique, immutable identifier
        kind: Coarse category ("domain", "concept", "framework", ...)
        weight: Relative importance in [0, 1]
        properties: Typed property record
        embedding: Fixed-length vector derived from kind and properties
        connections: Ids of neighbouring nodes (maintained by the Relation Store)
        created: Creation timestamp
        last_accessed: Timestamp of the most recent access
        access_count: Number of accesses recorded by touch()
        sequence: Insertion order, used for deterministic tie-breaks
    """
    id: str
    kind: str
    weight: float
    properties: NodeProperties
    embedding: np.ndarray
    connections: Set[str] = field(default_factory=set)
    created: float = field(default_factory=time.time)
    last_accessed: float = 0.0
    access_count: int = 0
    sequence: int = 0

    def __post_init__(self):
        if not self.last_accessed:
            self.last_accessed = self.created

    def to_dict(self, include_embedding: bool = False) -> Dict:
        data = {
            'id': self.id,
            'kind': self.kind,
            'weight': self.weight,
            'properties': self.properties.to_dict(),
            'connections': sorted(self.connections),
            'created': self.created,
            'last_accessed': self.last_accessed,
            'access_count': self.access_count,
        }
        if include_embedding:
            data['embedding'] = self.embedding.tolist()
        return data


def validate_weight(weight) -> float:
    if isinstance(weight, bool) or not isinstance(weight, (int, float)):
        raise InvalidWeight(weight)
    weight = float(weight)
    if not 0.0 <= weight <= 1.0:
        raise InvalidWeight(weight)
    return weight


class EntityStore:
    """
    Owns node records.

    Not thread-safe for writes on its own; the KnowledgeGraph serialises
    mutations. touch() is safe to call from concurrent readers.
    """

    def __init__(self, embeddings: EmbeddingService):
        self.embeddings = embeddings
        self._nodes: Dict[str, Node] = {}
        self._next_sequence = 0
        self._access_lock = threading.Lock()

        self.stats = {
            'nodes_created': 0,
            'reembedded': 0,
            'touches': 0,
        }

    @property
    def dimension(self) -> int:
        return self.embeddings.dimension

    def add_node(self, node_id: str, kind: str, weight: float = 0.5,
                 properties: Optional[Mapping] = None) -> str:
        """
        Add a new node.

        Every input is validated before anything is stored, so a failed call
        leaves the store unchanged.

        Args:
            node_id: Unique identifier
            kind: Node category
            weight: Importance in [0, 1]
            properties: Scalar-valued properties

        Returns:
            The node id

        Raises:
            DuplicateId: If node_id is already present
            InvalidNodeSpec: If node_id or kind is empty or not a string
            InvalidWeight: If weight is outside [0, 1]
            InvalidProperty: If a property value is not a scalar
        """
        if not isinstance(node_id, str) or not node_id.strip():
            raise InvalidNodeSpec(f"Node id must be a non-empty string, got {node_id!r}")
        if not isinstance(kind, str) or not kind.strip():
            raise InvalidNodeSpec(f"Node kind must be a non-empty string, got {kind!r}")
        if node_id in self._nodes:
            raise DuplicateId(node_id)

        weight = validate_weight(weight)
        record = NodeProperties.coerce(properties)
        embedding = self.embeddings.embed(kind, record)

        now = time.time()
        self._nodes[node_id] = Node(
            id=node_id,
            kind=kind,
            weight=weight,
            properties=record,
            embedding=embedding,
            created=now,
            last_accessed=now,
            sequence=self._next_sequence,
        )
        self._next_sequence += 1
        self.stats['nodes_created'] += 1
        return node_id

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def require(self, node_id: str) -> Node:
        """Get a node or raise UnknownNode."""
        node = self._nodes.get(node_id)
        if node is None:
            raise UnknownNode(node_id)
        return node

    def touch(self, node_id: str) -> None:
        """Record an access. Unknown ids are ignored."""
        node = self._nodes.get(node_id)
        if node is None:
            return
        with self._access_lock:
            node.last_accessed = time.time()
            node.access_count += 1
            self.stats['touches'] += 1

    def update_properties(self, node_id: str, updates: Mapping,
                          reembed: bool = False) -> Node:
        """
        Merge new property values into a node.

        The embedding is left untouched unless `reembed` is set.

        Raises:
            UnknownNode: If the node does not exist
            InvalidProperty: If a value is not a scalar
        """
        node = self.require(node_id)
        node.properties = node.properties.merged(updates)
        if reembed:
            self.reembed(node_id)
        return node

    def set_weight(self, node_id: str, weight: float) -> None:
        self.require(node_id).weight = validate_weight(weight)

    def reembed(self, node_id: str) -> np.ndarray:
        """
        Recompute a node's embedding from its current kind and properties.

        Returns:
            The new embedding
        """
        node = self.require(node_id)
        node.embedding = self.embeddings.embed(node.kind, node.properties)
        self.stats['reembedded'] += 1
        return node.embedding

    def embedding_matrix(self, node_ids: Optional[List[str]] = None) -> np.ndarray:
        """
        Stack embeddings into a matrix.

        Args:
            node_ids: Nodes to include (default: all, in insertion order)

        Returns:
            np.ndarray: Shape (N, dimension)
        """
        if node_ids is None:
            node_ids = self.node_ids()
        if not node_ids:
            return np.empty((0, self.dimension))
        return np.vstack([self.require(node_id).embedding for node_id in node_ids])

    def node_ids(self) -> List[str]:
        return list(self._nodes)

    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def sequence_of(self, node_id: str) -> int:
        node = self._nodes.get(node_id)
        return node.sequence if node is not None else -1

    def __contains__(self, node_id) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes.values()))

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self):
        return f"EntityStore(nodes={len(self._nodes)}, d={self.dimension})"
