"""
Relation Store: directed, typed, weighted edges between existing nodes.

At most one edge exists per (source, target, relation) triple. The store keeps
outgoing/incoming indexes for O(degree) neighbour lookups and maintains the
undirected `connections` sets on the nodes: two nodes stay connected while at
least one edge, in either direction, links them.

Adjacency can be exported as a dense numpy matrix for structural metrics.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, NamedTuple, Optional, Set, Tuple

import numpy as np

from conceptgraph.errors import (
    DuplicateEdge,
    InvalidEdgeSpec,
    InvalidStrength,
    SelfLoop,
    UnknownEdge,
)
from conceptgraph.memory.entities import EntityStore
from conceptgraph.memory.properties import EdgeProperties


class EdgeKey(NamedTuple):
    """Identity of an edge: the ordered (source, target, relation) triple."""
    source: str
    target: str
    relation: str


@dataclass
class Edge:
    """
    A directed relation between two nodes.

    Attributes:
        source: Origin node id
        target: Destination node id
        relation: Relation label ("requires", "enables", ...)
        strength: Intensity of the relation in [0, 1]
        properties: Typed property record
        traversal_count: Times the edge was part of a returned path or inference
        inferred: True for rule-derived edges
        confidence: Belief in the edge (1.0 for observed edges)
        derived_from: Premise edges for inferred edges
        created: Creation timestamp
    """
    source: str
    target: str
    relation: str
    strength: float
    properties: EdgeProperties = field(default_factory=EdgeProperties)
    traversal_count: int = 0
    inferred: bool = False
    confidence: float = 1.0
    derived_from: Tuple[EdgeKey, ...] = ()
    created: float = field(default_factory=time.time)

    @property
    def key(self) -> EdgeKey:
        return EdgeKey(self.source, self.target, self.relation)

    def to_dict(self) -> Dict:
        return {
            'source': self.source,
            'target': self.target,
            'relation': self.relation,
            'strength': self.strength,
            'properties': self.properties.to_dict(),
            'traversal_count': self.traversal_count,
            'inferred': self.inferred,
            'confidence': self.confidence,
            'derived_from': [list(k) for k in self.derived_from],
            'created': self.created,
        }


def validate_strength(strength, what: str = "Edge strength") -> float:
    if isinstance(strength, bool) or not isinstance(strength, (int, float)):
        raise InvalidStrength(strength, what)
    strength = float(strength)
    if not 0.0 <= strength <= 1.0:
        raise InvalidStrength(strength, what)
    return strength


def _pair(a: str, b: str) -> Tuple[str, str]:
    return (a, b) if a <= b else (b, a)


class RelationStore:
    """
    Owns edge records and the adjacency indexes.

    Mutations are expected to be serialised by the caller. record_traversal()
    only bumps counters and is safe from concurrent readers.

    Attributes:
        entities: Entity Store used for endpoint existence checks
        version: Incremented on every structural or strength change
    """

    def __init__(self, entities: EntityStore):
        self.entities = entities
        self._edges: Dict[EdgeKey, Edge] = {}
        self._out: Dict[str, Dict[EdgeKey, None]] = {}
        self._in: Dict[str, Dict[EdgeKey, None]] = {}
        self._pair_edges: Dict[Tuple[str, str], int] = {}
        self._traversal_lock = threading.Lock()
        self.version = 0

        self.stats = {
            'edges_created': 0,
            'edges_removed': 0,
            'reinforcements': 0,
            'decays': 0,
        }

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_edge(self, source: str, target: str, relation: str,
                 strength: float = 0.5, properties: Optional[Mapping] = None,
                 inferred: bool = False, confidence: float = 1.0,
                 derived_from: Tuple[EdgeKey, ...] = ()) -> EdgeKey:
        """
        Create an edge.

        All checks run before anything is written.

        Args:
            source: Existing origin node id
            target: Existing destination node id
            relation: Relation label
            strength: Strength in [0, 1]
            properties: Optional scalar-valued properties
            inferred: Whether the edge was derived by a rule
            confidence: Confidence in [0, 1]
            derived_from: Premise edge keys for inferred edges

        Returns:
            EdgeKey of the new edge

        Raises:
            UnknownNode: If either endpoint is missing
            DuplicateEdge: If the (source, target, relation) triple exists
            InvalidStrength: If strength or confidence is outside [0, 1]
            SelfLoop: If source == target
            InvalidEdgeSpec: If relation is empty
        """
        if not isinstance(relation, str) or not relation.strip():
            raise InvalidEdgeSpec(f"Relation type must be a non-empty string, got {relation!r}")
        self.entities.require(source)
        self.entities.require(target)
        if source == target:
            raise SelfLoop(source)

        key = EdgeKey(source, target, relation)
        if key in self._edges:
            raise DuplicateEdge(key)

        strength = validate_strength(strength)
        confidence = validate_strength(confidence, "Edge confidence")
        record = EdgeProperties.coerce(properties)

        edge = Edge(
            source=source,
            target=target,
            relation=relation,
            strength=strength,
            properties=record,
            inferred=inferred,
            confidence=confidence,
            derived_from=tuple(EdgeKey(*k) for k in derived_from),
        )

        self._edges[key] = edge
        self._out.setdefault(source, {})[key] = None
        self._in.setdefault(target, {})[key] = None

        pair = _pair(source, target)
        self._pair_edges[pair] = self._pair_edges.get(pair, 0) + 1
        self.entities.require(source).connections.add(target)
        self.entities.require(target).connections.add(source)

        self.version += 1
        self.stats['edges_created'] += 1
        return key

    def remove_edge(self, key) -> Edge:
        """
        Delete an edge and update both endpoints' connection sets.

        Returns:
            The removed edge

        Raises:
            UnknownEdge: If the key is not present
        """
        key = EdgeKey(*key)
        edge = self._edges.pop(key, None)
        if edge is None:
            raise UnknownEdge(key)

        self._out[edge.source].pop(key, None)
        self._in[edge.target].pop(key, None)

        pair = _pair(edge.source, edge.target)
        remaining = self._pair_edges.get(pair, 0) - 1
        if remaining > 0:
            self._pair_edges[pair] = remaining
        else:
            self._pair_edges.pop(pair, None)
            self.entities.require(edge.source).connections.discard(edge.target)
            self.entities.require(edge.target).connections.discard(edge.source)

        self.version += 1
        self.stats['edges_removed'] += 1
        return edge

    def reinforce(self, key, factor: float) -> float:
        """
        Multiply an edge's strength by `factor`, clamped to 1.0.

        Args:
            key: Edge key
            factor: Non-negative multiplier

        Returns:
            The new strength
        """
        if isinstance(factor, bool) or not isinstance(factor, (int, float)) or factor < 0:
            raise InvalidStrength(factor, "Reinforcement factor")
        edge = self.require(key)
        edge.strength = min(1.0, edge.strength * float(factor))
        self.version += 1
        self.stats['reinforcements'] += 1
        return edge.strength

    def decay(self, key, factor: float) -> float:
        """Multiply an edge's strength by a factor in [0, 1]."""
        factor = validate_strength(factor, "Decay factor")
        edge = self.require(key)
        edge.strength = edge.strength * factor
        self.version += 1
        self.stats['decays'] += 1
        return edge.strength

    def record_traversal(self, key, count: int = 1) -> None:
        """Increment an edge's traversal counter. Unknown keys are ignored."""
        edge = self._edges.get(EdgeKey(*key))
        if edge is None:
            return
        with self._traversal_lock:
            edge.traversal_count += count

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_edge(self, key) -> Optional[Edge]:
        return self._edges.get(EdgeKey(*key))

    def require(self, key) -> Edge:
        key = EdgeKey(*key)
        edge = self._edges.get(key)
        if edge is None:
            raise UnknownEdge(key)
        return edge

    def neighbors(self, node_id: str) -> Set[str]:
        """Undirected neighbour ids (empty for unknown nodes)."""
        node = self.entities.get_node(node_id)
        if node is None:
            return set()
        return set(node.connections)

    def out_edges(self, node_id: str) -> List[Edge]:
        """Outgoing edges in insertion order."""
        return [self._edges[k] for k in self._out.get(node_id, {})]

    def in_edges(self, node_id: str) -> List[Edge]:
        """Incoming edges in insertion order."""
        return [self._edges[k] for k in self._in.get(node_id, {})]

    def edges_between(self, a: str, b: str, directed: bool = False) -> List[Edge]:
        """
        Edges linking two nodes.

        Args:
            a: First node id
            b: Second node id
            directed: Only return a -> b edges when True

        Returns:
            List of edges (a -> b first, then b -> a)
        """
        forward = [e for e in self.out_edges(a) if e.target == b]
        if directed:
            return forward
        return forward + [e for e in self.out_edges(b) if e.target == a]

    def strongest_edge(self, a: str, b: str, directed: bool = True) -> Optional[Edge]:
        """Strongest edge between two nodes (first inserted wins ties)."""
        best = None
        for edge in self.edges_between(a, b, directed=directed):
            if best is None or edge.strength > best.strength:
                best = edge
        return best

    def are_connected(self, a: str, b: str) -> bool:
        return _pair(a, b) in self._pair_edges

    def edges(self) -> List[Edge]:
        return list(self._edges.values())

    def keys(self) -> List[EdgeKey]:
        return list(self._edges)

    def __contains__(self, key) -> bool:
        return EdgeKey(*key) in self._edges

    def __iter__(self) -> Iterator[Edge]:
        return iter(list(self._edges.values()))

    def __len__(self) -> int:
        return len(self._edges)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def adjacency_matrix(self, node_ids: Optional[List[str]] = None,
                         symmetric: bool = True) -> np.ndarray:
        """
        Dense adjacency of edge strengths.

        When several edges link the same pair, the strongest one is used.

        Args:
            node_ids: Row/column order (default: all nodes in insertion order)
            symmetric: Fold both directions into a symmetric matrix

        Returns:
            np.ndarray: Shape (N, N), zero diagonal
        """
        if node_ids is None:
            node_ids = self.entities.node_ids()
        index = {node_id: i for i, node_id in enumerate(node_ids)}
        N = len(node_ids)
        adjacency = np.zeros((N, N))

        for edge in self._edges.values():
            i = index.get(edge.source)
            j = index.get(edge.target)
            if i is None or j is None:
                continue
            adjacency[i, j] = max(adjacency[i, j], edge.strength)
            if symmetric:
                adjacency[j, i] = max(adjacency[j, i], edge.strength)

        return adjacency

    def get_density(self) -> float:
        """
        Proportion of connected undirected node pairs.

        Returns:
            float: Density in [0, 1]
        """
        N = len(self.entities)
        max_edges = N * (N - 1) / 2
        return len(self._pair_edges) / max_edges if max_edges > 0 else 0.0

    def get_degree_distribution(self) -> np.ndarray:
        """
        Degree (sum of absolute edge strengths) for each node.

        Returns:
            np.ndarray: Shape (N,) in entity insertion order
        """
        return np.sum(np.abs(self.adjacency_matrix()), axis=1)

    def __repr__(self):
        return f"RelationStore(edges={len(self._edges)}, density={self.get_density():.3f})"
