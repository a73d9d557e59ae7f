"""
Graph content generators.

bootstrap_foundational_knowledge() seeds a graph with the foundational
concepts (entrepreneurship, technology, creativity and strategy), their core
relations and four themed clusters.

ThemedGraphGenerator builds reproducible synthetic graphs: groups of densely
and strongly linked concepts joined by a few weak cross-theme edges, plus
query workloads over them. Useful for tests and benchmarks.
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from conceptgraph.config import GraphConfig
from conceptgraph.engine import KnowledgeGraph

logger = logging.getLogger(__name__)


FOUNDATIONAL_CONCEPTS = [
    # Entrepreneurship
    {'id': 'entrepreneurship', 'kind': 'domain', 'weight': 1.0,
     'properties': {'importance': 'high', 'frequency': 0.9}},
    {'id': 'startup', 'kind': 'concept', 'weight': 0.9,
     'properties': {'related_to': 'entrepreneurship', 'context': 'business'}},
    {'id': 'innovation', 'kind': 'concept', 'weight': 0.95,
     'properties': {'cross_domain': True, 'impact': 'high'}},
    {'id': 'business_model', 'kind': 'framework', 'weight': 0.85,
     'properties': {'practical': True, 'strategy': True}},
    # Technology
    {'id': 'artificial_intelligence', 'kind': 'domain', 'weight': 1.0,
     'properties': {'emerging': True, 'transformative': True}},
    {'id': 'machine_learning', 'kind': 'subdomain', 'weight': 0.9,
     'properties': {'parent': 'artificial_intelligence'}},
    {'id': 'software_development', 'kind': 'skill', 'weight': 0.8,
     'properties': {'technical': True, 'implementable': True}},
    {'id': 'data_science', 'kind': 'field', 'weight': 0.85,
     'properties': {'analytical': True, 'predictive': True}},
    # Creativity
    {'id': 'creativity', 'kind': 'capability', 'weight': 0.9,
     'properties': {'human_centric': True, 'inspirational': True}},
    {'id': 'design_thinking', 'kind': 'methodology', 'weight': 0.8,
     'properties': {'process': True, 'user_centered': True}},
    {'id': 'problem_solving', 'kind': 'skill', 'weight': 0.95,
     'properties': {'universal': True, 'critical': True}},
    # Strategy
    {'id': 'strategic_planning', 'kind': 'process', 'weight': 0.85,
     'properties': {'long_term': True, 'goal_oriented': True}},
    {'id': 'market_analysis', 'kind': 'method', 'weight': 0.8,
     'properties': {'research': True, 'data_driven': True}},
    {'id': 'competitive_advantage', 'kind': 'concept', 'weight': 0.9,
     'properties': {'business_critical': True}},
]

CORE_RELATIONS = [
    {'from': 'entrepreneurship', 'to': 'startup', 'type': 'encompasses', 'strength': 0.9},
    {'from': 'entrepreneurship', 'to': 'innovation', 'type': 'requires', 'strength': 0.8},
    {'from': 'startup', 'to': 'business_model', 'type': 'needs', 'strength': 0.85},
    {'from': 'artificial_intelligence', 'to': 'machine_learning', 'type': 'includes', 'strength': 0.9},
    {'from': 'machine_learning', 'to': 'data_science', 'type': 'overlaps', 'strength': 0.7},
    {'from': 'software_development', 'to': 'artificial_intelligence', 'type': 'implements', 'strength': 0.6},
    {'from': 'creativity', 'to': 'innovation', 'type': 'enables', 'strength': 0.85},
    {'from': 'design_thinking', 'to': 'problem_solving', 'type': 'facilitates', 'strength': 0.8},
    {'from': 'creativity', 'to': 'design_thinking', 'type': 'expresses_through', 'strength': 0.7},
    {'from': 'strategic_planning', 'to': 'market_analysis', 'type': 'includes', 'strength': 0.8},
    {'from': 'competitive_advantage', 'to': 'innovation', 'type': 'achieved_through', 'strength': 0.9},
    {'from': 'business_model', 'to': 'strategic_planning', 'type': 'requires', 'strength': 0.75},
    {'from': 'problem_solving', 'to': 'artificial_intelligence', 'type': 'enhanced_by', 'strength': 0.6},
    {'from': 'innovation', 'to': 'artificial_intelligence', 'type': 'leverages', 'strength': 0.7},
    {'from': 'entrepreneurship', 'to': 'strategic_planning', 'type': 'requires', 'strength': 0.8},
]

FOUNDATIONAL_CLUSTERS = [
    {'id': 'business_entrepreneurship', 'theme': 'Business & Entrepreneurship',
     'nodes': ['entrepreneurship', 'startup', 'business_model', 'strategic_planning',
               'competitive_advantage']},
    {'id': 'technology_ai', 'theme': 'Technology & AI',
     'nodes': ['artificial_intelligence', 'machine_learning', 'software_development',
               'data_science']},
    {'id': 'innovation_creativity', 'theme': 'Innovation & Creativity',
     'nodes': ['creativity', 'innovation', 'design_thinking', 'problem_solving']},
    {'id': 'strategy_analysis', 'theme': 'Strategy & Analysis',
     'nodes': ['strategic_planning', 'market_analysis', 'competitive_advantage']},
]


def bootstrap_foundational_knowledge(graph) -> Dict[str, int]:
    """
    Seed a KnowledgeGraph with the foundational concepts.

    Adds the concepts, the core relations and the themed clusters, then
    announces GraphReady.

    Args:
        graph: An empty KnowledgeGraph

    Returns:
        dict: Number of nodes, edges and clusters created
    """
    for concept in FOUNDATIONAL_CONCEPTS:
        graph.ingest(concept)
    for relation in CORE_RELATIONS:
        graph.relate(relation)
    for cluster in FOUNDATIONAL_CLUSTERS:
        graph.create_cluster(cluster['nodes'], theme=cluster['theme'], cluster_id=cluster['id'])

    graph.mark_ready()
    return {
        'nodes': len(FOUNDATIONAL_CONCEPTS),
        'edges': len(CORE_RELATIONS),
        'clusters': len(FOUNDATIONAL_CLUSTERS),
    }


class ThemedGraphGenerator:
    """
    Generate graphs with thematic structure.

    Each theme is a group of concepts sharing a kind, linked by strong edges
    (intra-theme). A few weak edges join random pairs of themes.

    Attributes:
        num_themes: Number of themes
        nodes_per_theme: Concepts per theme
        themes: theme name -> node ids (filled by populate())
    """

    def __init__(self, num_themes: int = 3, nodes_per_theme: int = 4,
                 intra_density: float = 1.0,
                 intra_strength: Tuple[float, float] = (0.7, 1.0),
                 cross_edges: int = 2,
                 cross_strength: Tuple[float, float] = (0.05, 0.3),
                 random_seed: Optional[int] = None):
        """
        Initialize themed graph generator.

        Args:
            num_themes: Number of distinct themes
            nodes_per_theme: Concepts in each theme
            intra_density: Probability that a pair within a theme is linked
            intra_strength: (low, high) strength range for intra-theme edges
            cross_edges: Number of weak edges between themes
            cross_strength: (low, high) strength range for cross-theme edges
            random_seed: Optional seed for reproducibility
        """
        self.num_themes = num_themes
        self.nodes_per_theme = nodes_per_theme
        self.intra_density = intra_density
        self.intra_strength = intra_strength
        self.cross_edges = cross_edges
        self.cross_strength = cross_strength

        self.rng = np.random.RandomState(random_seed)
        self.themes: Dict[str, List[str]] = {}

    def theme_name(self, t: int) -> str:
        return f"theme{t}"

    def populate(self, graph) -> Dict[str, List[str]]:
        """
        Add themed concepts and relations to a graph.

        Returns:
            dict: theme name -> node ids
        """
        self.themes = {}
        for t in range(self.num_themes):
            theme = self.theme_name(t)
            members = []
            for i in range(self.nodes_per_theme):
                node_id = f"{theme}_concept{i}"
                graph.add_node(
                    node_id,
                    kind=theme,
                    weight=float(self.rng.uniform(0.3, 1.0)),
                    properties={'label': f"{theme} concept {i}", 'domain': theme},
                )
                members.append(node_id)
            self.themes[theme] = members

        for theme, members in self.themes.items():
            for i, a in enumerate(members):
                for b in members[i + 1:]:
                    if self.rng.rand() < self.intra_density:
                        graph.add_edge(a, b, "relates_to", strength=self._strength(self.intra_strength))

        names = list(self.themes)
        added = 0
        attempts = 0
        while len(names) > 1 and added < self.cross_edges and attempts < self.cross_edges * 10:
            attempts += 1
            t1, t2 = self.rng.choice(len(names), size=2, replace=False)
            a = self.themes[names[t1]][self.rng.randint(self.nodes_per_theme)]
            b = self.themes[names[t2]][self.rng.randint(self.nodes_per_theme)]
            if graph.get_edge((a, b, "bridges")) is not None:
                continue
            graph.add_edge(a, b, "bridges", strength=self._strength(self.cross_strength))
            added += 1

        logger.debug(f"Generated {self.num_themes} themes with {added} cross-theme edges")
        return self.themes

    def _strength(self, bounds: Tuple[float, float]) -> float:
        low, high = bounds
        return float(np.clip(self.rng.uniform(low, high), 0.0, 1.0))

    def query_workload(self, num_queries: int, within_theme_prob: float = 0.7) -> List[Tuple[str, str]]:
        """
        Sample (source, target) pairs for path queries.

        With probability `within_theme_prob` both endpoints come from the same
        theme, otherwise from two random themes.

        Returns:
            List of (source, target) node id pairs
        """
        if not self.themes:
            return []

        names = list(self.themes)
        queries = []
        for _ in range(num_queries):
            if len(names) == 1 or self.rng.rand() < within_theme_prob:
                members = self.themes[names[self.rng.randint(len(names))]]
                if len(members) < 2:
                    continue
                i, j = self.rng.choice(len(members), size=2, replace=False)
                queries.append((members[i], members[j]))
            else:
                t1, t2 = self.rng.choice(len(names), size=2, replace=False)
                queries.append((
                    self.themes[names[t1]][self.rng.randint(self.nodes_per_theme)],
                    self.themes[names[t2]][self.rng.randint(self.nodes_per_theme)],
                ))
        return queries


def create_default_graph(config: Optional[GraphConfig] = None) -> KnowledgeGraph:
    """Factory: a KnowledgeGraph seeded with the foundational knowledge."""
    graph = KnowledgeGraph(config=config)
    bootstrap_foundational_knowledge(graph)
    return graph
