"""
Unit tests for the Semantic Index.
"""

import pytest

from conceptgraph.memory.index import SemanticIndex


@pytest.fixture
def index(entities):
    idx = SemanticIndex(entities)
    specs = [
        ("ai", "domain", {'label': "Artificial Intelligence"}),
        ("machine_learning", "subdomain", {'parent': "ai"}),
        ("data_science", "field", {'label': "Data Science", 'analytical': True}),
        ("startup", "concept", {'context': "business"}),
    ]
    for node_id, kind, props in specs:
        entities.add_node(node_id, kind, properties=props)
        idx.index(entities.get_node(node_id))
    return idx


class TestIndexing:
    """Test token extraction and lookup."""

    def test_tokens_include_kind_keys_and_values(self, index, entities):
        tokens = index.tokens_for(entities.get_node("data_science"))

        assert "field" in tokens
        assert "label" in tokens
        assert "analytical" in tokens
        assert "data science" in tokens
        assert "science" in tokens

    def test_lookup(self, index):
        assert index.lookup("business") == {"startup"}
        assert index.lookup("Artificial Intelligence") == {"ai"}
        assert index.lookup("nothing") == set()

    def test_reindex_replaces_tokens(self, index, entities):
        entities.update_properties("startup", {'context': "venture"})
        index.index(entities.get_node("startup"))

        assert index.lookup("business") == set()
        assert index.lookup("venture") == {"startup"}

    def test_remove(self, index):
        index.remove("startup")
        assert index.lookup("business") == set()
        assert index.lookup("concept") == set()


class TestSearch:
    """Test ranked search."""

    def test_direct_match_ranks_first(self, index):
        """Test that searching 'ai' returns node 'ai' first with relevance 1.0."""
        results = index.search("ai")

        assert results[0].node_id == "ai"
        assert results[0].relevance == 1.0
        assert results[0].match_type == "direct"

    def test_token_match_relevance(self, index):
        results = index.search("business")

        assert [r.node_id for r in results] == ["startup"]
        assert results[0].relevance == 0.8
        assert results[0].match_type == "semantic"

    def test_each_node_once_with_best_relevance(self, index):
        results = index.search("science")
        ids = [r.node_id for r in results]

        assert ids.count("data_science") == 1
        assert results[0].node_id == "data_science"
        assert results[0].relevance == 1.0

    def test_ties_keep_insertion_order(self, index):
        results = index.search("a")
        direct = [r.node_id for r in results if r.relevance == 1.0]

        assert direct == ["ai", "machine_learning", "data_science", "startup"]

    def test_limit_and_case(self, index):
        assert len(index.search("A", limit=2)) == 2
        assert index.search("ai", limit=0) == []
        assert index.search("   ") == []
