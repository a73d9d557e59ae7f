"""
KnowledgeGraph: orchestrator and query façade of the concept graph.

Wires the Entity Store, Relation Store, Embedding Service, Semantic Index,
Pathfinder, Cluster Manager, Inference Engine and Maintenance Scheduler
together, and serialises access to them:

- mutations (ingestion and every maintenance phase) hold the exclusive write lock
- queries share the read lock
- events are published after the lock is released
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Mapping, Optional

import networkx as nx

from conceptgraph import __version__
from conceptgraph.concurrency import ReadWriteLock
from conceptgraph.config import GraphConfig
from conceptgraph.dynamics.maintenance import MaintenanceScheduler, TickReport
from conceptgraph.dynamics.updates import prune_weak_edges, reinforce_frequent_edges
from conceptgraph.errors import InvalidEdgeSpec, InvalidNodeSpec
from conceptgraph.events import (
    ClustersRebalanced,
    EdgeAdded,
    EdgeRemoved,
    EventBus,
    GraphReady,
    InferenceComplete,
    MaintenanceComplete,
    NodeAdded,
)
from conceptgraph.ingestion.embeddings import Embedder, EmbeddingService
from conceptgraph.ingestion.text_processor import TextProcessor
from conceptgraph.knowledge.clusters import ClusterManager, RebalanceResult
from conceptgraph.knowledge.inference import InferenceEngine, InferenceResult, SIMILAR_RELATION
from conceptgraph.knowledge.pathfinder import Pathfinder, PathRecord
from conceptgraph.memory.entities import EntityStore, Node
from conceptgraph.memory.index import SearchResult, SemanticIndex
from conceptgraph.memory.relations import Edge, EdgeKey, RelationStore
from conceptgraph.similarity import cosine_similarity_to_many
from conceptgraph.utils import compute_metrics

logger = logging.getLogger(__name__)


@dataclass
class RelatedConcept:
    """A node related to a query node, directly or by embedding similarity."""
    node_id: str
    relationship: str
    strength: float
    distance: int

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class ContextualMap:
    """
    Neighbourhood of a node, layer by layer.

    Attributes:
        center: Query node id
        layers: layers[i] holds the nodes first reached at distance i + 1
        connections: Edges among the centre and layer nodes
        clusters: Ids of clusters containing any node of the map
    """
    center: str
    layers: List[List[str]] = field(default_factory=list)
    connections: List[Dict] = field(default_factory=list)
    clusters: List[str] = field(default_factory=list)

    @property
    def nodes(self) -> List[str]:
        return [self.center] + [n for layer in self.layers for n in layer]

    def to_dict(self) -> Dict:
        return asdict(self)


class KnowledgeGraph:
    """
    Self-maintaining in-memory knowledge graph.

    Attributes:
        config: GraphConfig with every tunable
        entities: Entity Store (nodes and embeddings)
        relations: Relation Store (edges and adjacency)
        index: Semantic Index (token -> node ids)
        pathfinder: Cached path search
        clusters: Cluster Manager
        inference: Inference Engine
        scheduler: Maintenance Scheduler
        events: Event bus notified of every structural change
        metrics: Metrics from the most recent recomputation
    """

    def __init__(self, config: Optional[GraphConfig] = None,
                 embedder: Optional[Embedder] = None,
                 event_bus: Optional[EventBus] = None,
                 name: str = "conceptgraph"):
        """
        Initialize an empty graph.

        Args:
            config: Tunables (default: GraphConfig())
            embedder: Custom embedder (default: deterministic hashing embedder)
            event_bus: Shared event bus (default: a private one)
            name: Graph name used in reports
        """
        self.config = config or GraphConfig()
        self.name = name
        cfg = self.config

        self.processor = TextProcessor()
        self.embeddings = EmbeddingService(embedder, dimension=cfg.embedding_dim)
        self.entities = EntityStore(self.embeddings)
        self.relations = RelationStore(self.entities)
        self.index = SemanticIndex(self.entities, self.processor)
        self.pathfinder = Pathfinder(
            self.relations,
            max_depth=cfg.max_depth,
            cache_size=cfg.path_cache_size,
        )
        self.clusters = ClusterManager(
            self.relations,
            strength_threshold=cfg.cluster_strength_threshold,
            split_connectivity=cfg.split_connectivity,
            merge_connectivity=cfg.merge_connectivity,
            merge_max_size=cfg.merge_max_size,
            merge_similarity_threshold=cfg.merge_similarity_threshold,
            processor=self.processor,
        )
        self.inference = InferenceEngine(
            self.relations,
            decay=cfg.inference_decay,
            confidence=cfg.inference_confidence,
            max_per_cycle=cfg.max_inferences_per_cycle,
            similarity_enabled=cfg.similarity_rule_enabled,
            clustering_enabled=cfg.clustering_rule_enabled,
            similarity_threshold=cfg.similarity_rule_threshold,
            cluster_provider=self._cluster_members,
        )
        self.events = event_bus or EventBus(history_size=cfg.event_history_size)
        self.lock = ReadWriteLock()

        self.scheduler = MaintenanceScheduler(
            phases=[
                ("inference", self.run_inference),
                ("pruning", self.prune),
                ("reinforcement", self.reinforce_frequent),
                ("rebalancing", self.rebalance_clusters),
                ("metrics", self.update_metrics),
            ],
            interval_seconds=cfg.maintenance_interval,
            on_tick=self._on_tick,
            name=f"{name}-maintenance",
        )

        self.created_at = time.time()
        self.metrics: Dict = compute_metrics(self.relations, self.index, self.clusters)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def add_node(self, node_id: str, kind: str, weight: float = 0.5,
                 properties: Optional[Mapping] = None) -> str:
        """
        Add a concept node and index it.

        Raises:
            DuplicateId, InvalidNodeSpec, InvalidWeight, InvalidProperty
        """
        with self.lock.write_locked():
            self.entities.add_node(node_id, kind, weight=weight, properties=properties)
            self.index.index(self.entities.require(node_id))

        self.events.publish(NodeAdded(node_id=node_id, kind=kind))
        return node_id

    def add_edge(self, source: str, target: str, relation: str, strength: float = 0.5,
                 properties: Optional[Mapping] = None) -> EdgeKey:
        """
        Add a relation and attach unclustered endpoints to a cluster.

        Raises:
            UnknownNode, DuplicateEdge, InvalidStrength, SelfLoop, InvalidEdgeSpec
        """
        with self.lock.write_locked():
            key = self.relations.add_edge(source, target, relation,
                                          strength=strength, properties=properties)
            self.clusters.assign_node(source)
            self.clusters.assign_node(target)

        self.events.publish(EdgeAdded(key=key, inferred=False))
        return key

    def ingest(self, spec: Mapping) -> str:
        """
        Add a node from a producer payload.

        Args:
            spec: {'id': str, 'kind': str, 'weight'?: float, 'properties'?: dict}

        Returns:
            The node id
        """
        if not isinstance(spec, Mapping):
            raise InvalidNodeSpec(f"Node spec must be a mapping, got {type(spec).__name__}")
        missing = [k for k in ('id', 'kind') if k not in spec]
        if missing:
            raise InvalidNodeSpec(f"Node spec is missing {missing}")

        return self.add_node(
            spec['id'],
            spec['kind'],
            weight=spec.get('weight', 0.5),
            properties=spec.get('properties'),
        )

    def relate(self, spec: Mapping) -> EdgeKey:
        """
        Add an edge from a producer payload.

        Args:
            spec: {'from': str, 'to': str, 'type': str, 'strength'?: float,
                'properties'?: dict}

        Returns:
            EdgeKey of the new edge
        """
        if not isinstance(spec, Mapping):
            raise InvalidEdgeSpec(f"Relation spec must be a mapping, got {type(spec).__name__}")
        missing = [k for k in ('from', 'to', 'type') if k not in spec]
        if missing:
            raise InvalidEdgeSpec(f"Relation spec is missing {missing}")

        return self.add_edge(
            spec['from'],
            spec['to'],
            spec['type'],
            strength=spec.get('strength', 0.5),
            properties=spec.get('properties'),
        )

    def remove_edge(self, key) -> Edge:
        with self.lock.write_locked():
            edge = self.relations.remove_edge(key)

        self.events.publish(EdgeRemoved(key=edge.key, reason='explicit'))
        return edge

    def reinforce(self, key, factor: float) -> float:
        with self.lock.write_locked():
            return self.relations.reinforce(key, factor)

    def decay(self, key, factor: float) -> float:
        with self.lock.write_locked():
            return self.relations.decay(key, factor)

    def update_properties(self, node_id: str, updates: Mapping, reembed: bool = False) -> Node:
        """Merge properties into a node and re-index it."""
        with self.lock.write_locked():
            node = self.entities.update_properties(node_id, updates, reembed=reembed)
            self.index.index(node)
            return node

    def reembed(self, node_id: str):
        with self.lock.write_locked():
            return self.entities.reembed(node_id)

    def create_cluster(self, node_ids, theme: Optional[str] = None,
                       cluster_id: Optional[str] = None) -> str:
        with self.lock.write_locked():
            return self.clusters.create_cluster(node_ids, theme=theme, cluster_id=cluster_id)

    def form_clusters(self) -> List[str]:
        """Discover clusters among unclustered nodes."""
        with self.lock.write_locked():
            return self.clusters.form_clusters()

    def mark_ready(self) -> None:
        """Recompute metrics and announce that the graph is populated."""
        metrics = self.update_metrics()
        self.events.publish(GraphReady(
            nodes=metrics['nodes'],
            edges=metrics['edges'],
            clusters=metrics['clusters'],
        ))
        logger.info(
            f"Graph {self.name!r} ready: {metrics['nodes']} nodes, "
            f"{metrics['edges']} edges, {metrics['clusters']} clusters"
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> Optional[Node]:
        with self.lock.read_locked():
            node = self.entities.get_node(node_id)
            if node is not None:
                self.entities.touch(node_id)
            return node

    def get_edge(self, key) -> Optional[Edge]:
        with self.lock.read_locked():
            return self.relations.get_edge(key)

    def neighbors(self, node_id: str) -> List[str]:
        """Neighbour ids in insertion order (empty for unknown nodes)."""
        with self.lock.read_locked():
            return sorted(self.relations.neighbors(node_id), key=self.entities.sequence_of)

    def find_path(self, source: str, target: str,
                  max_depth: Optional[int] = None) -> Optional[PathRecord]:
        """
        Preferred path between two concepts.

        A direct edge is returned as-is; otherwise the strongest path within
        `max_depth` hops, shorter paths winning ties. Every edge of the returned
        path has its traversal counter incremented.

        Returns:
            PathRecord, or None if no path exists or an endpoint is unknown
        """
        with self.lock.read_locked():
            record = self.pathfinder.find_path(source, target, max_depth=max_depth)
            if record is not None:
                self.entities.touch(source)
                self.entities.touch(target)
            return record

    def find_all_paths(self, source: str, target: str,
                       max_depth: Optional[int] = None) -> List[PathRecord]:
        with self.lock.read_locked():
            return self.pathfinder.find_all_paths(source, target, max_depth=max_depth)

    def get_related_concepts(self, node_id: str, limit: int = 10) -> List[RelatedConcept]:
        """
        Direct neighbours and semantically similar nodes, strongest first.

        Neighbours score with the strength of their strongest edge (distance 1).
        Other nodes whose embedding similarity exceeds the configured threshold
        score with that similarity (distance 2, relationship
        "semantically_similar").

        Args:
            node_id: Query node
            limit: Maximum number of results

        Returns:
            List of RelatedConcept (empty for unknown nodes)
        """
        with self.lock.read_locked():
            node = self.entities.get_node(node_id)
            if node is None or limit <= 0:
                return []
            self.entities.touch(node_id)

            related = []
            for neighbor in node.connections:
                edge = self.relations.strongest_edge(node_id, neighbor, directed=False)
                if edge is not None:
                    related.append(RelatedConcept(neighbor, edge.relation, edge.strength, 1))

            present = {r.node_id for r in related}
            others = [n for n in self.entities.node_ids() if n != node_id and n not in present]
            if others:
                sims = cosine_similarity_to_many(node.embedding, self.entities.embedding_matrix(others))
                for other, sim in zip(others, sims):
                    if sim > self.config.related_similarity_threshold:
                        related.append(RelatedConcept(other, SIMILAR_RELATION, float(sim), 2))

            related.sort(key=lambda r: (-r.strength, r.distance, self.entities.sequence_of(r.node_id)))
            return related[:limit]

    def search_concepts(self, query: str, limit: int = 10) -> List[SearchResult]:
        """Free-text search over ids and indexed tokens."""
        with self.lock.read_locked():
            return self.index.search(query, limit=limit)

    def get_contextual_map(self, node_id: str, depth: int = 2) -> Optional[ContextualMap]:
        """
        Layered breadth-first neighbourhood of a node.

        Each layer holds nodes not present in any earlier layer nor the centre.

        Returns:
            ContextualMap, or None for unknown nodes
        """
        with self.lock.read_locked():
            if node_id not in self.entities:
                return None
            self.entities.touch(node_id)

            context = ContextualMap(center=node_id)
            seen = {node_id}
            frontier = [node_id]
            for _ in range(max(depth, 0)):
                layer = set()
                for current in frontier:
                    layer |= self.relations.neighbors(current) - seen
                if not layer:
                    break
                ordered = sorted(layer, key=self.entities.sequence_of)
                context.layers.append(ordered)
                seen |= layer
                frontier = ordered

            for edge in self.relations.edges():
                if edge.source in seen and edge.target in seen:
                    context.connections.append({
                        'source': edge.source,
                        'target': edge.target,
                        'relation': edge.relation,
                        'strength': edge.strength,
                    })

            context.clusters = [
                c.cluster_id for c in self.clusters
                if seen.intersection(c.nodes)
            ]
            return context

    def generate_knowledge_report(self) -> Dict:
        """Read-only snapshot of structure, metrics and maintenance state."""
        with self.lock.read_locked():
            metrics = dict(self.metrics)
            return {
                'graph': self.name,
                'version': __version__,
                'status': 'active' if self.scheduler.is_running() else 'inactive',
                'metrics': metrics,
                'structure': {
                    'nodes': len(self.entities),
                    'edges': len(self.relations),
                    'clusters': len(self.clusters),
                    'semantic_index': self.index.token_count,
                },
                'intelligence': {
                    'inference_rules': len(self.inference.rules),
                    'enabled_rules': [n for n, r in self.inference.rules.items() if r.enabled],
                    'inferred_edges': sum(1 for e in self.relations.edges() if e.inferred),
                    'cached_paths': self.pathfinder.cached_paths,
                },
                'clusters': self.clusters.summary(),
                'maintenance': dict(self.scheduler.stats),
                'timestamp': time.time(),
            }

    def export_knowledge_graph(self, include_embeddings: bool = False) -> Dict:
        """
        Plain-data export of the whole graph (not a persistence format).

        Returns:
            dict with nodes, edges, clusters, metrics and config
        """
        with self.lock.read_locked():
            return {
                'graph': self.name,
                'version': __version__,
                'config': asdict(self.config),
                'nodes': [n.to_dict(include_embedding=include_embeddings) for n in self.entities],
                'edges': [e.to_dict() for e in self.relations],
                'clusters': [c.to_dict() for c in self.clusters],
                'metrics': dict(self.metrics),
            }

    def to_networkx(self) -> nx.MultiDiGraph:
        """Directed multigraph with one edge per relation (edge key = relation)."""
        with self.lock.read_locked():
            G = nx.MultiDiGraph(name=self.name)
            for node in self.entities:
                G.add_node(node.id, kind=node.kind, weight=node.weight,
                           **{f"prop_{k}": v for k, v in node.properties.items()})
            for edge in self.relations:
                G.add_edge(edge.source, edge.target, key=edge.relation,
                           strength=edge.strength, inferred=edge.inferred,
                           traversal_count=edge.traversal_count)
            return G

    def get_state(self) -> Dict:
        """
        Get current system state.

        Returns:
            dict: Counts, metrics and component statistics
        """
        with self.lock.read_locked():
            return {
                'nodes': len(self.entities),
                'edges': len(self.relations),
                'clusters': len(self.clusters),
                'metrics': dict(self.metrics),
                'stats': {
                    'entities': dict(self.entities.stats),
                    'relations': dict(self.relations.stats),
                    'pathfinder': dict(self.pathfinder.stats),
                    'clusters': dict(self.clusters.stats),
                    'inference': dict(self.inference.stats),
                    'maintenance': dict(self.scheduler.stats),
                    'events': dict(self.events.stats),
                },
                'parameters': asdict(self.config),
            }

    # ------------------------------------------------------------------
    # Maintenance phases
    # ------------------------------------------------------------------

    def run_inference(self, cap: Optional[int] = None) -> InferenceResult:
        with self.lock.write_locked():
            result = self.inference.run(cap)

        for key in result.accepted:
            self.events.publish(EdgeAdded(key=key, inferred=True))
        self.events.publish(InferenceComplete(
            proposed=result.proposed,
            accepted=tuple(result.accepted),
        ))
        return result

    def prune(self) -> List[Edge]:
        cfg = self.config
        with self.lock.write_locked():
            removed = prune_weak_edges(
                self.relations,
                threshold=cfg.prune_strength_threshold,
                min_traversals=cfg.prune_min_traversals,
                batch_size=cfg.prune_batch_size,
            )

        for edge in removed:
            self.events.publish(EdgeRemoved(key=edge.key, reason='pruned'))
        return removed

    def reinforce_frequent(self):
        cfg = self.config
        with self.lock.write_locked():
            return reinforce_frequent_edges(
                self.relations,
                traversal_threshold=cfg.reinforce_traversal_threshold,
                factor=cfg.reinforce_factor,
            )

    def rebalance_clusters(self) -> RebalanceResult:
        with self.lock.write_locked():
            result = self.clusters.rebalance()

        if result.changed:
            self.events.publish(ClustersRebalanced(
                split=tuple(result.split),
                merged=tuple(result.merged),
                destroyed=tuple(result.destroyed),
            ))
        return result

    def update_metrics(self) -> Dict:
        with self.lock.write_locked():
            self.metrics = compute_metrics(self.relations, self.index, self.clusters)
            return dict(self.metrics)

    def run_maintenance(self) -> Optional[TickReport]:
        """Run one maintenance tick now (skipped if one is already running)."""
        return self.scheduler.run_tick()

    def start_maintenance(self) -> None:
        self.scheduler.start()

    def stop_maintenance(self, wait: bool = True, timeout: float = 5.0) -> None:
        self.scheduler.stop(wait=wait, timeout=timeout)

    def _on_tick(self, report: TickReport) -> None:
        self.events.publish(MaintenanceComplete(
            tick=report.tick,
            failed_phases=tuple(report.failed_phases),
            metrics=dict(self.metrics),
        ))

    def _cluster_members(self):
        return [(list(c.nodes), c.coherence) for c in self.clusters]

    def __len__(self):
        return len(self.entities)

    def __contains__(self, node_id) -> bool:
        return node_id in self.entities

    def __repr__(self):
        return (f"KnowledgeGraph(name={self.name!r}, nodes={len(self.entities)}, "
                f"edges={len(self.relations)}, clusters={len(self.clusters)})")
