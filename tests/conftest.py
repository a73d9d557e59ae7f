"""
Shared fixtures for the conceptgraph test suite.
"""

import pytest

from conceptgraph import GraphConfig, KnowledgeGraph
from conceptgraph.ingestion.embeddings import EmbeddingService
from conceptgraph.memory.entities import EntityStore
from conceptgraph.memory.relations import RelationStore


@pytest.fixture
def entities():
    return EntityStore(EmbeddingService(dimension=32))


@pytest.fixture
def relations(entities):
    return RelationStore(entities)


@pytest.fixture
def graph():
    return KnowledgeGraph()


@pytest.fixture
def tech_graph():
    """ai -> ml (0.9), ml -> data_science (0.7)."""
    g = KnowledgeGraph()
    g.add_node("ai", "domain", weight=1.0, properties={'label': "Artificial Intelligence"})
    g.add_node("ml", "subdomain", weight=0.9, properties={'label': "Machine Learning", 'parent': "ai"})
    g.add_node("data_science", "field", weight=0.85, properties={'analytical': True})
    g.add_edge("ai", "ml", "includes", strength=0.9)
    g.add_edge("ml", "data_science", "overlaps", strength=0.7)
    return g


@pytest.fixture
def fast_config():
    return GraphConfig(maintenance_interval=0.05)

