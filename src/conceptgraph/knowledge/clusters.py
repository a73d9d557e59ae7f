"""
Cluster Manager: themed groups of concepts kept in shape by connectivity.

Clusters are discovered at bootstrap from strongly connected regions of the
graph, then maintained by rebalance():

- a cluster whose member pairs are poorly connected (connectivity < 0.5) is
  split in two, either along its connected components or with a
  Kernighan-Lin bisection of its member subgraph;
- a small, densely connected cluster (connectivity > 0.9, fewer than 3 members)
  is merged into the most similar edge-adjacent cluster, similarity being the
  cosine similarity of member-embedding centroids.

A split is only accepted when both halves are non-empty and at least as well
connected as the parent. Clusters never keep missing nodes and are destroyed
when they become empty.
"""

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import networkx as nx
import numpy as np

from conceptgraph.errors import InvalidNodeSpec, UnknownCluster
from conceptgraph.ingestion.text_processor import TextProcessor
from conceptgraph.memory.relations import RelationStore
from conceptgraph.similarity import centroid, cosine_similarity

logger = logging.getLogger(__name__)


@dataclass
class Cluster:
    """
    A named group of related nodes.

    Attributes:
        cluster_id: Unique identifier
        theme: Human-readable theme derived from member kinds
        nodes: Member node ids (ordered, unique)
        coherence: Mean strength of edges among members (0-1)
        connectivity: Fraction of member pairs linked by an edge (0-1)
        method: How the cluster came to be ('connectivity', 'split', 'merge', 'manual')
        keywords: Frequent tokens of member ids and labels
        created_at: Creation timestamp
        last_updated: Timestamp of the last recomputation
    """
    cluster_id: str
    theme: str
    nodes: List[str]
    coherence: float = 0.0
    connectivity: float = 0.0
    method: str = "connectivity"
    keywords: List[str] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    last_updated: float = field(default_factory=time.time)

    def to_dict(self) -> Dict:
        return {
            'id': self.cluster_id,
            'theme': self.theme,
            'nodes': list(self.nodes),
            'coherence': self.coherence,
            'connectivity': self.connectivity,
            'method': self.method,
            'keywords': list(self.keywords),
            'created_at': self.created_at,
            'last_updated': self.last_updated,
        }

    def __len__(self):
        return len(self.nodes)


@dataclass
class RebalanceResult:
    """Outcome of one rebalance() pass."""
    split: List[Tuple[str, str, str]] = field(default_factory=list)   # (parent, half_a, half_b)
    merged: List[Tuple[str, str, str]] = field(default_factory=list)  # (cluster, partner, merged)
    destroyed: List[str] = field(default_factory=list)
    rejected_splits: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.split or self.merged or self.destroyed)


class ClusterManager:
    """
    Maintains clusters over the Relation Store.

    Attributes:
        clusters: cluster_id -> Cluster
    """

    def __init__(
        self,
        relations: RelationStore,
        strength_threshold: float = 0.6,
        split_connectivity: float = 0.5,
        merge_connectivity: float = 0.9,
        merge_max_size: int = 3,
        merge_similarity_threshold: float = 0.5,
        processor: Optional[TextProcessor] = None,
    ):
        """
        Args:
            relations: Relation Store (its Entity Store supplies nodes)
            strength_threshold: Minimum edge strength for discovery and assignment
            split_connectivity: Split clusters below this connectivity
            merge_connectivity: Merge small clusters above this connectivity
            merge_max_size: Only clusters with fewer members are merged
            merge_similarity_threshold: Minimum centroid similarity for a merge
            processor: Tokenizer for cluster keywords
        """
        self.relations = relations
        self.entities = relations.entities
        self.strength_threshold = strength_threshold
        self.split_connectivity = split_connectivity
        self.merge_connectivity = merge_connectivity
        self.merge_max_size = merge_max_size
        self.merge_similarity_threshold = merge_similarity_threshold
        self.processor = processor or TextProcessor()

        self.clusters: Dict[str, Cluster] = {}
        self._next_id = 0

        self.stats = {
            'clusters_formed': 0,
            'splits': 0,
            'rejected_splits': 0,
            'merges': 0,
            'destroyed': 0,
        }

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def form_clusters(self, min_size: int = 2) -> List[str]:
        """
        Discover clusters among nodes not yet in any cluster.

        Breadth-first search from every unvisited node, following edges
        (either direction) stronger than `strength_threshold`. Components with
        at least `min_size` nodes become clusters.

        Returns:
            Ids of the new clusters
        """
        clustered = {n for c in self.clusters.values() for n in c.nodes}
        visited = set(clustered)
        created = []

        for node_id in self.entities.node_ids():
            if node_id in visited:
                continue
            members = self._discover(node_id, visited)
            if len(members) >= min_size:
                created.append(self._add(members, method="connectivity"))

        self.stats['clusters_formed'] += len(created)
        if created:
            logger.info(f"Formed {len(created)} clusters from {len(self.entities)} nodes")
        return created

    def _discover(self, start: str, visited: set) -> List[str]:
        members = []
        queue = [start]
        while queue:
            node_id = queue.pop(0)
            if node_id in visited:
                continue
            visited.add(node_id)
            members.append(node_id)

            for neighbor in sorted(self.relations.neighbors(node_id), key=self.entities.sequence_of):
                if neighbor in visited:
                    continue
                edge = self.relations.strongest_edge(node_id, neighbor, directed=False)
                if edge is not None and edge.strength > self.strength_threshold:
                    queue.append(neighbor)
        return members

    def create_cluster(self, node_ids: Iterable[str], theme: Optional[str] = None,
                       method: str = "manual", cluster_id: Optional[str] = None) -> str:
        """
        Create a cluster from explicit members.

        A `cluster_id` that is already taken is replaced by a generated one.

        Raises:
            UnknownNode: If a member does not exist
            InvalidNodeSpec: If no members are given
        """
        members = list(dict.fromkeys(node_ids))
        if not members:
            raise InvalidNodeSpec("A cluster needs at least one node")
        for node_id in members:
            self.entities.require(node_id)
        return self._add(members, method=method, theme=theme, cluster_id=cluster_id)

    def _add(self, members: List[str], method: str, theme: Optional[str] = None,
             cluster_id: Optional[str] = None) -> str:
        if cluster_id is None or cluster_id in self.clusters:
            cluster_id = f"cluster_{self._next_id}"
            self._next_id += 1
            while cluster_id in self.clusters:
                cluster_id = f"cluster_{self._next_id}"
                self._next_id += 1

        cluster = Cluster(
            cluster_id=cluster_id,
            theme=theme or self.generate_theme(members),
            nodes=list(members),
            method=method,
            keywords=self.extract_keywords(members),
        )
        self.clusters[cluster_id] = cluster
        self.refresh(cluster)
        return cluster_id

    def assign_node(self, node_id: str) -> Optional[str]:
        """
        Attach an unclustered node to the cluster of its strongest neighbour.

        Only neighbours linked by an edge stronger than `strength_threshold`
        are considered.

        Returns:
            The cluster id the node joined, or None
        """
        if node_id not in self.entities or self.clusters_for(node_id):
            return None

        best_cluster, best_strength = None, self.strength_threshold
        for neighbor in self.relations.neighbors(node_id):
            edge = self.relations.strongest_edge(node_id, neighbor, directed=False)
            if edge is None or edge.strength <= best_strength:
                continue
            owners = self.clusters_for(neighbor)
            if owners:
                best_cluster, best_strength = owners[0], edge.strength

        if best_cluster is None:
            return None

        cluster = self.clusters[best_cluster]
        cluster.nodes.append(node_id)
        self.refresh(cluster)
        logger.debug(f"Assigned {node_id!r} to {best_cluster}")
        return best_cluster

    # ------------------------------------------------------------------
    # Lookup and scores
    # ------------------------------------------------------------------

    def get_cluster(self, cluster_id: str) -> Optional[Cluster]:
        return self.clusters.get(cluster_id)

    def require(self, cluster_id: str) -> Cluster:
        cluster = self.clusters.get(cluster_id)
        if cluster is None:
            raise UnknownCluster(cluster_id)
        return cluster

    def clusters_for(self, node_id: str) -> List[str]:
        return [cid for cid, c in self.clusters.items() if node_id in c.nodes]

    def connectivity(self, cluster) -> float:
        """
        Fraction of undirected member pairs linked by at least one edge.

        A single-node cluster is trivially fully connected (1.0).

        Returns:
            float: Connectivity in [0, 1]
        """
        nodes = self._members(cluster)
        return self._pair_connectivity(nodes)

    def _pair_connectivity(self, nodes: List[str]) -> float:
        n = len(nodes)
        if n == 0:
            return 0.0
        if n == 1:
            return 1.0
        possible = n * (n - 1) / 2
        existing = 0
        for i in range(n):
            for j in range(i + 1, n):
                if self.relations.are_connected(nodes[i], nodes[j]):
                    existing += 1
        return existing / possible

    def coherence(self, cluster) -> float:
        """Mean strength of the strongest edge of each connected member pair."""
        nodes = self._members(cluster)
        strengths = []
        for i in range(len(nodes)):
            for j in range(i + 1, len(nodes)):
                edge = self.relations.strongest_edge(nodes[i], nodes[j], directed=False)
                if edge is not None:
                    strengths.append(edge.strength)
        return float(np.mean(strengths)) if strengths else 0.0

    def centroid(self, cluster) -> np.ndarray:
        nodes = [n for n in self._members(cluster) if n in self.entities]
        return centroid(self.entities.embedding_matrix(nodes))

    def similarity(self, a, b) -> float:
        """Cosine similarity of two clusters' centroids."""
        return cosine_similarity(self.centroid(a), self.centroid(b))

    def refresh(self, cluster: Cluster) -> None:
        cluster.connectivity = self.connectivity(cluster)
        cluster.coherence = self.coherence(cluster)
        cluster.last_updated = time.time()

    def refresh_all(self) -> None:
        for cluster in self.clusters.values():
            self.refresh(cluster)

    def _members(self, cluster) -> List[str]:
        if isinstance(cluster, Cluster):
            return cluster.nodes
        if isinstance(cluster, str):
            return self.require(cluster).nodes
        return list(cluster)

    # ------------------------------------------------------------------
    # Rebalancing
    # ------------------------------------------------------------------

    def rebalance(self) -> RebalanceResult:
        """
        Split poorly connected clusters and merge small dense ones.

        Clusters produced during this pass are not revisited until the next one.

        Returns:
            RebalanceResult describing every structural change
        """
        result = RebalanceResult(destroyed=self.prune_missing())

        for cluster_id in list(self.clusters):
            cluster = self.clusters.get(cluster_id)
            if cluster is None:
                continue

            connectivity = self.connectivity(cluster)
            if connectivity < self.split_connectivity:
                halves = self.split(cluster_id)
                if halves is None:
                    result.rejected_splits.append(cluster_id)
                else:
                    result.split.append((cluster_id, halves[0], halves[1]))
            elif connectivity > self.merge_connectivity and len(cluster.nodes) < self.merge_max_size:
                merged = self.merge(cluster_id)
                if merged is not None:
                    result.merged.append((cluster_id, merged[0], merged[1]))

        self.refresh_all()
        return result

    def split(self, cluster_id: str) -> Optional[Tuple[str, str]]:
        """
        Split a cluster in two.

        Candidate partitions, tried in order: largest connected component of
        the member subgraph versus the rest, then a Kernighan-Lin bisection
        weighted by edge strength. The first candidate whose halves are both
        non-empty and no less connected than the parent is applied.

        Returns:
            Ids of the two new clusters, or None if the split was rejected
        """
        cluster = self.require(cluster_id)
        members = list(cluster.nodes)
        if len(members) < 2:
            self.stats['rejected_splits'] += 1
            return None

        parent_connectivity = self.connectivity(cluster)
        graph = self.member_graph(members)

        for part_a, part_b in self._candidate_partitions(graph, members):
            half_a = [n for n in members if n in part_a]
            half_b = [n for n in members if n in part_b]
            if not half_a or not half_b:
                continue
            if min(self._pair_connectivity(half_a), self._pair_connectivity(half_b)) < parent_connectivity:
                continue

            del self.clusters[cluster_id]
            id_a = self._add(half_a, method="split", cluster_id=f"{cluster_id}_split_0")
            id_b = self._add(half_b, method="split", cluster_id=f"{cluster_id}_split_1")
            self.stats['splits'] += 1
            logger.info(
                f"Split {cluster_id} (connectivity {parent_connectivity:.2f}) "
                f"into {id_a} ({len(half_a)}) and {id_b} ({len(half_b)})"
            )
            return id_a, id_b

        self.stats['rejected_splits'] += 1
        logger.debug(f"Rejected split of {cluster_id}: no partition improves connectivity")
        return None

    def _candidate_partitions(self, graph: nx.Graph, members: List[str]):
        components = sorted(
            nx.connected_components(graph),
            key=lambda c: (-len(c), min(self.entities.sequence_of(n) for n in c)),
        )
        if len(components) > 1:
            largest = components[0]
            yield largest, set(members) - largest

        if graph.number_of_nodes() >= 2:
            part_a, part_b = nx.algorithms.community.kernighan_lin_bisection(
                graph, weight="weight", seed=0
            )
            yield set(part_a), set(part_b)

    def merge(self, cluster_id: str) -> Optional[Tuple[str, str]]:
        """
        Merge a cluster with its most similar edge-adjacent cluster.

        Returns:
            (partner_id, merged_id), or None if no neighbour is similar enough
        """
        cluster = self.require(cluster_id)
        best_id, best_similarity = None, self.merge_similarity_threshold

        for other_id in self._adjacent_clusters(cluster):
            similarity = self.similarity(cluster, self.clusters[other_id])
            if similarity > best_similarity:
                best_id, best_similarity = other_id, similarity

        if best_id is None:
            return None

        partner = self.clusters[best_id]
        members = list(dict.fromkeys(cluster.nodes + partner.nodes))
        del self.clusters[cluster_id]
        del self.clusters[best_id]
        merged_id = self._add(members, method="merge", cluster_id=f"{cluster_id}_merged_{best_id}")
        self.stats['merges'] += 1
        logger.info(f"Merged {cluster_id} with {best_id} (similarity {best_similarity:.2f}) into {merged_id}")
        return best_id, merged_id

    def _adjacent_clusters(self, cluster: Cluster) -> List[str]:
        members = set(cluster.nodes)
        frontier = set(members)
        for node_id in cluster.nodes:
            frontier |= self.relations.neighbors(node_id)

        return [
            cid for cid, other in self.clusters.items()
            if cid != cluster.cluster_id and frontier.intersection(other.nodes)
        ]

    def prune_missing(self) -> List[str]:
        """
        Drop member ids that no longer exist and destroy empty clusters.

        Returns:
            Ids of destroyed clusters
        """
        destroyed = []
        for cluster_id, cluster in list(self.clusters.items()):
            cluster.nodes = [n for n in cluster.nodes if n in self.entities]
            if not cluster.nodes:
                del self.clusters[cluster_id]
                destroyed.append(cluster_id)
        self.stats['destroyed'] += len(destroyed)
        return destroyed

    # ------------------------------------------------------------------
    # Naming and export
    # ------------------------------------------------------------------

    def generate_theme(self, node_ids: List[str]) -> str:
        """
        Theme from member kinds.

        "<kind>_cluster" when all members share a kind, otherwise
        "multi_domain_<kind1>_<kind2>" from the first two distinct kinds.
        """
        kinds = []
        for node_id in node_ids:
            node = self.entities.get_node(node_id)
            if node is not None and node.kind not in kinds:
                kinds.append(node.kind)
        if not kinds:
            return "empty_cluster"
        if len(kinds) == 1:
            return f"{kinds[0]}_cluster"
        return "multi_domain_" + "_".join(kinds[:2])

    def extract_keywords(self, node_ids: List[str], top_k: int = 5) -> List[str]:
        """Most frequent tokens of member ids and labels."""
        counts: Counter = Counter()
        for node_id in node_ids:
            node = self.entities.get_node(node_id)
            texts = [node_id]
            if node is not None and node.properties.label:
                texts.append(node.properties.label)
            for token in self.processor.tokenize_many(texts):
                if "_" not in token:
                    counts[token] += 1
        return [word for word, _ in counts.most_common(top_k)]

    def member_graph(self, members: List[str]) -> nx.Graph:
        """Undirected subgraph of members weighted by strongest edge strength."""
        graph = nx.Graph()
        graph.add_nodes_from(members)
        for i, a in enumerate(members):
            for b in members[i + 1:]:
                edge = self.relations.strongest_edge(a, b, directed=False)
                if edge is not None:
                    graph.add_edge(a, b, weight=edge.strength)
        return graph

    def summary(self) -> Dict:
        """Summary statistics over all clusters."""
        if not self.clusters:
            return {
                'total_clusters': 0,
                'avg_coherence': 0.0,
                'avg_connectivity': 0.0,
                'avg_members': 0.0,
                'stats': self.stats.copy(),
            }

        clusters = list(self.clusters.values())
        return {
            'total_clusters': len(clusters),
            'avg_coherence': float(np.mean([c.coherence for c in clusters])),
            'avg_connectivity': float(np.mean([c.connectivity for c in clusters])),
            'avg_members': float(np.mean([len(c.nodes) for c in clusters])),
            'stats': self.stats.copy(),
        }

    def to_networkx(self) -> nx.Graph:
        """
        Cluster-level graph: one node per cluster, edges weighted by the
        number of relations crossing between the two clusters.
        """
        G = nx.Graph()
        for cluster in self.clusters.values():
            G.add_node(
                cluster.cluster_id,
                theme=cluster.theme,
                coherence=cluster.coherence,
                connectivity=cluster.connectivity,
                member_count=len(cluster.nodes),
                keywords=list(cluster.keywords),
            )

        owner: Dict[str, List[str]] = {}
        for cluster in self.clusters.values():
            for node_id in cluster.nodes:
                owner.setdefault(node_id, []).append(cluster.cluster_id)

        for edge in self.relations:
            for a in owner.get(edge.source, []):
                for b in owner.get(edge.target, []):
                    if a == b:
                        continue
                    weight = G.edges[a, b]['weight'] + 1 if G.has_edge(a, b) else 1
                    G.add_edge(a, b, weight=weight)
        return G

    def __iter__(self) -> Iterator[Cluster]:
        return iter(list(self.clusters.values()))

    def __len__(self) -> int:
        return len(self.clusters)

    def __repr__(self):
        return f"ClusterManager(clusters={len(self.clusters)})"
