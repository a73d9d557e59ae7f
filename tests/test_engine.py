"""
Integration tests for the KnowledgeGraph façade.
"""

import time

import networkx as nx
import pytest

from conceptgraph import GraphConfig, KnowledgeGraph
from conceptgraph.errors import (
    DuplicateEdge,
    DuplicateId,
    InvalidEdgeSpec,
    InvalidNodeSpec,
    UnknownNode,
)
from conceptgraph.events import (
    ClustersRebalanced,
    EdgeAdded,
    EdgeRemoved,
    InferenceComplete,
    MaintenanceComplete,
    NodeAdded,
)
from conceptgraph.utils import analyze_edge_distribution


class TestIngestion:
    """Test node and relation ingestion."""

    def test_ingest_and_get(self, graph):
        node_id = graph.ingest({
            'id': "startup",
            'kind': "concept",
            'weight': 0.9,
            'properties': {'context': "business"},
        })

        node = graph.get_node(node_id)
        assert node.id == "startup"
        assert node.kind == "concept"
        assert node.properties['context'] == "business"
        assert node.access_count == 1

    def test_ingest_default_weight(self, graph):
        graph.ingest({'id': "x", 'kind': "concept"})
        assert graph.get_node("x").weight == 0.5

    def test_ingest_missing_fields(self, graph):
        with pytest.raises(InvalidNodeSpec):
            graph.ingest({'id': "x"})
        with pytest.raises(InvalidNodeSpec):
            graph.ingest(["x", "concept"])

    def test_ingest_duplicate(self, graph):
        graph.ingest({'id': "x", 'kind': "concept"})
        with pytest.raises(DuplicateId):
            graph.ingest({'id': "x", 'kind': "domain"})

    def test_relate(self, tech_graph):
        key = tech_graph.relate({'from': "data_science", 'to': "ai", 'type': "informs", 'strength': 0.4})

        assert key == ("data_science", "ai", "informs")
        assert "ai" in tech_graph.neighbors("data_science")
        assert "data_science" in tech_graph.neighbors("ai")

    def test_relate_errors(self, tech_graph):
        with pytest.raises(DuplicateEdge):
            tech_graph.relate({'from': "ai", 'to': "ml", 'type': "includes", 'strength': 0.1})
        with pytest.raises(UnknownNode):
            tech_graph.relate({'from': "ai", 'to': "ghost", 'type': "r"})
        with pytest.raises(InvalidEdgeSpec):
            tech_graph.relate({'from': "ai", 'type': "r"})

    def test_new_node_indexed(self, graph):
        graph.add_node("lean_canvas", "framework", properties={'label': "Lean Canvas"})
        assert [r.node_id for r in graph.search_concepts("canvas")] == ["lean_canvas"]

    def test_update_properties_reindexes(self, graph):
        graph.add_node("x", "concept", properties={'label': "alpha"})
        graph.update_properties("x", {'label': "omega"})

        assert graph.search_concepts("alpha") == []
        assert graph.search_concepts("omega")[0].node_id == "x"

    def test_relate_assigns_cluster(self, graph):
        graph.add_node("a", "concept")
        graph.add_node("b", "concept")
        graph.add_node("c", "concept")
        graph.add_edge("a", "b", "r", strength=0.9)
        cid = graph.create_cluster(["a", "b"])

        graph.add_edge("c", "a", "r", strength=0.8)

        assert "c" in graph.clusters.get_cluster(cid).nodes


class TestQueries:
    """Test the read-side operations."""

    def test_find_path_direct(self, tech_graph):
        record = tech_graph.find_path("ai", "ml")
        assert record.distance == 1
        assert record.strength == pytest.approx(0.9)

    def test_find_path_indirect(self, tech_graph):
        record = tech_graph.find_path("ai", "data_science")
        assert record.distance == 2
        assert record.strength == pytest.approx(0.63)
        assert tech_graph.get_edge(("ai", "ml", "includes")).traversal_count == 1

    def test_find_path_unknown(self, tech_graph):
        assert tech_graph.find_path("ai", "ghost") is None

    def test_search_ai_first(self, tech_graph):
        results = tech_graph.search_concepts("ai")
        assert results[0].node_id == "ai"
        assert results[0].relevance == 1.0

    def test_related_concepts_direct(self, tech_graph):
        related = tech_graph.get_related_concepts("ml")

        direct = {r.node_id: r for r in related if r.distance == 1}
        assert set(direct) == {"ai", "data_science"}
        assert direct["ai"].strength == pytest.approx(0.9)
        assert direct["ai"].relationship == "includes"
        assert related[0].node_id == "ai"

    def test_related_concepts_semantic(self, graph):
        props = {'label': "growth hacking", 'domain': "marketing"}
        graph.add_node("a", "method", properties=props)
        graph.add_node("b", "method", properties=props)
        graph.add_node("c", "capability", properties={'label': "oil painting"})

        related = graph.get_related_concepts("a")

        assert [r.node_id for r in related] == ["b"]
        assert related[0].relationship == "semantically_similar"
        assert related[0].distance == 2
        assert related[0].strength > 0.7

    def test_related_concepts_sorted_and_limited(self, graph):
        graph.add_node("hub", "concept")
        for i, strength in enumerate([0.2, 0.9, 0.5]):
            graph.add_node(f"n{i}", "concept", properties={'label': f"unique topic {i}"})
            graph.add_edge("hub", f"n{i}", "r", strength=strength)

        related = graph.get_related_concepts("hub", limit=2)

        assert [r.node_id for r in related] == ["n1", "n2"]

    def test_related_concepts_unknown(self, graph):
        assert graph.get_related_concepts("ghost") == []

    def test_contextual_map_layers(self, graph):
        for node_id in ("center", "a", "b", "c", "far"):
            graph.add_node(node_id, "concept")
        graph.add_edge("center", "a", "r")
        graph.add_edge("b", "center", "r")
        graph.add_edge("a", "c", "r")
        graph.add_edge("c", "far", "r")

        context = graph.get_contextual_map("center", depth=2)

        assert context.layers == [["a", "b"], ["c"]]
        assert "far" not in context.nodes
        assert {(c['source'], c['target']) for c in context.connections} == {
            ("center", "a"), ("b", "center"), ("a", "c"),
        }

    def test_contextual_map_layers_are_disjoint(self, graph):
        for node_id in ("x", "y", "z"):
            graph.add_node(node_id, "concept")
        graph.add_edge("x", "y", "r")
        graph.add_edge("y", "z", "r")
        graph.add_edge("z", "x", "r")

        context = graph.get_contextual_map("x", depth=3)

        assert context.layers == [["y", "z"]]

    def test_contextual_map_unknown(self, graph):
        assert graph.get_contextual_map("ghost") is None


class TestMaintenance:
    """Test maintenance phases through the façade."""

    def test_inference_phase(self, tech_graph):
        result = tech_graph.run_inference()

        assert result.accepted == [("ai", "data_science", "inferred_includes")]
        edge = tech_graph.get_edge(("ai", "data_science", "inferred_includes"))
        assert edge.inferred

    def test_prune_phase(self, graph):
        graph.add_node("a", "concept")
        graph.add_node("b", "concept")
        graph.add_edge("a", "b", "weak", strength=0.05)

        removed = graph.prune()

        assert [e.relation for e in removed] == ["weak"]
        assert graph.neighbors("a") == []

    def test_run_maintenance_tick(self, tech_graph):
        report = tech_graph.run_maintenance()

        assert report.completed_phases == [
            "inference", "pruning", "reinforcement", "rebalancing", "metrics",
        ]
        assert report.failed_phases == []
        assert tech_graph.metrics['edges'] == 3
        assert tech_graph.metrics['inference_rate'] == pytest.approx(1 / 3)

    def test_failing_phase_reported(self, tech_graph):
        def broken():
            raise RuntimeError("rebalance exploded")

        tech_graph.scheduler.phases[3] = ("rebalancing", broken)
        report = tech_graph.run_maintenance()

        assert report.failed_phases == ["rebalancing"]
        assert "metrics" in report.completed_phases

    def test_background_maintenance(self, fast_config):
        graph = KnowledgeGraph(config=fast_config)
        graph.add_node("a", "concept")
        done = []
        graph.events.subscribe(MaintenanceComplete, done.append)

        graph.start_maintenance()
        try:
            assert graph.generate_knowledge_report()['status'] == "active"
            for _ in range(100):
                if done:
                    break
                time.sleep(0.02)
        finally:
            graph.stop_maintenance()

        assert done
        assert graph.generate_knowledge_report()['status'] == "inactive"


class TestEvents:
    """Test events published by the façade."""

    def test_ingestion_events(self, graph):
        seen = []
        graph.events.subscribe_all(seen.append)

        graph.add_node("a", "concept")
        graph.add_node("b", "concept")
        key = graph.add_edge("a", "b", "r")
        graph.remove_edge(key)

        assert [type(e) for e in seen] == [NodeAdded, NodeAdded, EdgeAdded, EdgeRemoved]
        assert seen[-1].reason == "explicit"

    def test_maintenance_events(self, tech_graph):
        seen = []
        tech_graph.events.subscribe_all(seen.append)

        tech_graph.run_maintenance()

        kinds = [type(e) for e in seen]
        assert EdgeAdded in kinds
        assert InferenceComplete in kinds
        assert kinds[-1] is MaintenanceComplete
        assert seen[-1].tick == 1

    def test_rebalance_event(self, graph):
        for node_id in ("a", "b", "c", "d"):
            graph.add_node(node_id, "concept")
        graph.add_edge("a", "b", "r", strength=0.9)
        graph.add_edge("c", "d", "r", strength=0.9)
        graph.create_cluster(["a", "b", "c", "d"])
        seen = []
        graph.events.subscribe(ClustersRebalanced, seen.append)

        graph.rebalance_clusters()

        assert len(seen) == 1
        assert len(seen[0].split) == 1

    def test_subscriber_error_does_not_break_ingestion(self, graph):
        def broken(event):
            raise RuntimeError("subscriber failure")

        graph.events.subscribe(NodeAdded, broken)
        graph.add_node("a", "concept")

        assert "a" in graph


class TestReporting:
    """Test report, export and networkx views."""

    def test_report_structure(self, tech_graph):
        tech_graph.update_metrics()
        report = tech_graph.generate_knowledge_report()

        assert report['structure']['nodes'] == 3
        assert report['structure']['edges'] == 2
        assert report['structure']['semantic_index'] > 0
        assert report['intelligence']['inference_rules'] == 3
        assert 0.0 <= report['metrics']['semantic_coverage'] <= 1.0
        assert report['metrics']['traversal_efficiency'] == pytest.approx(0.9)

    def test_traversal_efficiency_after_queries(self, tech_graph):
        tech_graph.find_path("ai", "data_science")
        metrics = tech_graph.update_metrics()

        assert metrics['total_traversals'] == 2
        assert metrics['traversal_efficiency'] == pytest.approx(2 / 20)

    def test_export(self, tech_graph):
        data = tech_graph.export_knowledge_graph()

        assert [n['id'] for n in data['nodes']] == ["ai", "ml", "data_science"]
        assert len(data['edges']) == 2
        assert data['config']['max_depth'] == 3
        assert 'embedding' not in data['nodes'][0]
        assert len(tech_graph.export_knowledge_graph(include_embeddings=True)['nodes'][0]['embedding']) == 128

    def test_to_networkx(self, tech_graph):
        G = tech_graph.to_networkx()

        assert isinstance(G, nx.MultiDiGraph)
        assert G.number_of_nodes() == 3
        assert G.has_edge("ai", "ml", key="includes")
        assert G.edges["ai", "ml", "includes"]['strength'] == pytest.approx(0.9)
        assert G.nodes["ai"]['kind'] == "domain"

    def test_get_state(self, tech_graph):
        state = tech_graph.get_state()
        assert state['nodes'] == 3
        assert state['parameters']['embedding_dim'] == 128
        assert 'pathfinder' in state['stats']

    def test_custom_config_flows_through(self):
        graph = KnowledgeGraph(config=GraphConfig(embedding_dim=16, max_depth=1))
        for node_id in ("a", "b", "c"):
            graph.add_node(node_id, "concept")
        graph.add_edge("a", "b", "r", strength=0.9)
        graph.add_edge("b", "c", "r", strength=0.9)

        assert graph.get_node("a").embedding.shape == (16,)
        assert graph.find_path("a", "c") is None

    def test_optional_rule_switches_flow_through(self):
        """Test that both optional inference rules can be switched on from config."""
        graph = KnowledgeGraph(config=GraphConfig(clustering_rule_enabled=True))
        assert graph.inference.rules['clustering'].enabled
        assert not graph.inference.rules['similarity'].enabled

        graph = KnowledgeGraph(config=GraphConfig(similarity_rule_enabled=True))
        assert graph.inference.rules['similarity'].enabled
        assert not graph.inference.rules['clustering'].enabled

    def test_edge_distribution(self, tech_graph):
        stats = analyze_edge_distribution(tech_graph.relations, num_bins=5)

        assert stats['count'] == 2
        assert stats['mean'] == pytest.approx(0.8)
        assert stats['hist'][0].sum() == 2
        assert analyze_edge_distribution(tech_graph.relations, inferred=True)['count'] == 0
