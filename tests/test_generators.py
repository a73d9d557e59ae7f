"""
Tests for the foundational bootstrap and the themed graph generator.
"""

import pytest

from conceptgraph import KnowledgeGraph, bootstrap_foundational_knowledge, create_default_graph
from conceptgraph.events import GraphReady
from conceptgraph.generators import FOUNDATIONAL_CLUSTERS, ThemedGraphGenerator


class TestFoundationalKnowledge:
    """Test seeding a graph with the foundational concepts."""

    def test_bootstrap_counts(self):
        graph = KnowledgeGraph()
        counts = bootstrap_foundational_knowledge(graph)

        assert counts == {'nodes': 14, 'edges': 15, 'clusters': 4}
        assert len(graph) == 14
        assert len(graph.relations) == 15
        assert len(graph.clusters) == 4

    def test_graph_ready_published(self):
        graph = KnowledgeGraph()
        ready = []
        graph.events.subscribe(GraphReady, ready.append)

        bootstrap_foundational_knowledge(graph)

        assert len(ready) == 1
        assert (ready[0].nodes, ready[0].edges, ready[0].clusters) == (14, 15, 4)

    def test_named_clusters(self):
        graph = create_default_graph()

        for spec in FOUNDATIONAL_CLUSTERS:
            cluster = graph.clusters.get_cluster(spec['id'])
            assert cluster.theme == spec['theme']
            assert set(cluster.nodes) == set(spec['nodes'])

    def test_queries_over_foundation(self):
        graph = create_default_graph()

        direct = graph.find_path("entrepreneurship", "innovation")
        assert direct.distance == 1
        assert direct.strength == pytest.approx(0.8)

        assert graph.search_concepts("machine")[0].node_id == "machine_learning"
        assert "startup" in [r.node_id for r in graph.get_related_concepts("entrepreneurship")]

    def test_maintenance_over_foundation(self):
        graph = create_default_graph()

        report = graph.run_maintenance()

        assert report.failed_phases == []
        assert graph.metrics['inferred_edges'] == 5
        assert len(graph.relations) == 20


class TestThemedGraphGenerator:
    """Test synthetic graph generation."""

    def test_populate_structure(self):
        graph = KnowledgeGraph()
        themes = ThemedGraphGenerator(num_themes=3, nodes_per_theme=4, cross_edges=0,
                                      random_seed=7).populate(graph)

        assert list(themes) == ["theme0", "theme1", "theme2"]
        assert len(graph) == 12
        # complete graph on 4 nodes per theme
        assert len(graph.relations) == 18
        assert graph.get_node("theme1_concept2").kind == "theme1"

    def test_reproducible_with_seed(self):
        exports = []
        for _ in range(2):
            graph = KnowledgeGraph()
            ThemedGraphGenerator(cross_edges=3, random_seed=42).populate(graph)
            exports.append([(e['source'], e['target'], e['strength'])
                            for e in graph.export_knowledge_graph()['edges']])

        assert exports[0] == exports[1]

    def test_cross_edges_are_weak(self):
        graph = KnowledgeGraph()
        ThemedGraphGenerator(cross_edges=3, random_seed=3).populate(graph)

        bridges = [e for e in graph.relations.edges() if e.relation == "bridges"]
        assert len(bridges) == 3
        assert all(0.05 <= e.strength <= 0.3 for e in bridges)

    def test_form_clusters_recovers_themes(self):
        graph = KnowledgeGraph()
        themes = ThemedGraphGenerator(cross_edges=2, random_seed=11).populate(graph)

        created = graph.form_clusters()

        found = sorted(sorted(graph.clusters.get_cluster(cid).nodes) for cid in created)
        assert found == sorted(sorted(members) for members in themes.values())
        assert not graph.rebalance_clusters().changed

    def test_rebalance_splits_mixed_cluster(self):
        graph = KnowledgeGraph()
        ThemedGraphGenerator(cross_edges=0, random_seed=5).populate(graph)
        parent = graph.create_cluster(graph.entities.node_ids())

        result = graph.rebalance_clusters()

        assert [s[0] for s in result.split] == [parent]
        assert graph.clusters.get_cluster(parent) is None
        _, half_a, half_b = result.split[0]
        nodes_a = set(graph.clusters.get_cluster(half_a).nodes)
        nodes_b = set(graph.clusters.get_cluster(half_b).nodes)
        assert nodes_a | nodes_b == set(graph.entities.node_ids())
        assert not nodes_a & nodes_b

    def test_query_workload(self):
        generator = ThemedGraphGenerator(random_seed=1)
        assert generator.query_workload(5) == []

        generator.populate(KnowledgeGraph())
        queries = generator.query_workload(20, within_theme_prob=1.0)

        assert len(queries) == 20
        for source, target in queries:
            assert source != target
            assert source.split("_")[0] == target.split("_")[0]
