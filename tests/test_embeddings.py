"""
Unit tests for embeddings, similarity and tokenization.
"""

import numpy as np
import pytest

from conceptgraph.ingestion.embeddings import EmbeddingService, HashingEmbedder
from conceptgraph.ingestion.text_processor import TextProcessor
from conceptgraph.similarity import (
    centroid,
    cosine_similarity,
    cosine_similarity_matrix,
    cosine_similarity_to_many,
)


class TestCosineSimilarity:
    """Test similarity functions."""

    def test_symmetric(self):
        rng = np.random.RandomState(0)
        a, b = rng.randn(16), rng.randn(16)
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_self_similarity_is_one(self):
        a = np.array([0.3, -1.2, 4.0])
        assert cosine_similarity(a, a) == pytest.approx(1.0)

    def test_zero_vector_gives_zero(self):
        zero = np.zeros(4)
        assert cosine_similarity(zero, np.ones(4)) == 0.0
        assert cosine_similarity(zero, zero) == 0.0

    def test_bounds(self):
        a = np.array([1.0, 0.0])
        assert cosine_similarity(a, -a) == pytest.approx(-1.0)
        assert cosine_similarity(a, np.array([0.0, 2.0])) == pytest.approx(0.0)

    def test_matrix_matches_pairwise(self):
        rng = np.random.RandomState(1)
        vectors = rng.randn(5, 8)
        sims = cosine_similarity_matrix(vectors)

        assert sims.shape == (5, 5)
        assert np.allclose(sims, sims.T)
        assert np.allclose(np.diag(sims), 1.0)
        assert sims[1, 3] == pytest.approx(cosine_similarity(vectors[1], vectors[3]))

    def test_empty_inputs(self):
        assert cosine_similarity_matrix(np.empty((0, 3))).shape == (0, 0)
        assert cosine_similarity_to_many(np.ones(3), np.empty((0, 3))).shape == (0,)

    def test_to_many(self):
        vectors = np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
        sims = cosine_similarity_to_many(np.array([1.0, 0.0]), vectors)
        assert np.allclose(sims, [1.0, 0.0, 1 / np.sqrt(2)])

    def test_centroid(self):
        assert np.allclose(centroid(np.array([[1.0, 0.0], [0.0, 1.0]])), [0.5, 0.5])
        assert centroid(np.empty((0, 3))).shape == (3,)


class TestHashingEmbedder:
    """Test the deterministic embedder."""

    def test_deterministic(self):
        """Test that the same content always yields the same vector."""
        props = {'label': "Machine Learning", 'parent': "ai"}
        a = HashingEmbedder(dimension=64).embed("subdomain", props)
        b = HashingEmbedder(dimension=64).embed("subdomain", dict(reversed(list(props.items()))))

        assert np.array_equal(a, b)

    def test_unit_norm(self):
        vector = HashingEmbedder(dimension=64).embed("domain", {'label': "AI"})
        assert vector.shape == (64,)
        assert np.linalg.norm(vector) == pytest.approx(1.0)

    def test_shared_features_are_closer(self):
        embedder = HashingEmbedder(dimension=128)
        ml = embedder.embed("concept", {'label': "machine learning", 'field': "ai"})
        dl = embedder.embed("concept", {'label': "deep learning", 'field': "ai"})
        art = embedder.embed("capability", {'label': "watercolour painting", 'medium': "paper"})

        assert cosine_similarity(ml, dl) > cosine_similarity(ml, art)

    def test_features_include_kind_and_values(self):
        features = HashingEmbedder().features("domain", {'label': "Data Science", 'flag': True})
        assert "tok:domain" in features
        assert "kv:label=data science" in features
        assert "kv:flag=true" in features
        assert "tok:science" in features


class TestEmbeddingService:
    """Test the embedding front."""

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            EmbeddingService(HashingEmbedder(dimension=16), dimension=32)

    def test_wrong_shape_from_custom_embedder(self):
        class Broken:
            dimension = 8

            def embed(self, kind, properties):
                return np.ones(4)

        service = EmbeddingService(Broken(), dimension=8)
        with pytest.raises(ValueError):
            service.embed("concept", {})

    def test_embed_many(self):
        service = EmbeddingService(dimension=16)
        matrix = service.embed_many([("a", {}), ("b", {'label': "x"})])
        assert matrix.shape == (2, 16)
        assert service.embed_many([]).shape == (0, 16)


class TestTextProcessor:
    """Test tokenization."""

    def test_identifier_split_and_kept_whole(self):
        tokens = TextProcessor().tokenize("machine_learning")
        assert tokens[0] == "machine_learning"
        assert "machine" in tokens
        assert "learning" in tokens

    def test_camel_case(self):
        tokens = TextProcessor().tokenize("DataScience")
        assert "data" in tokens
        assert "science" in tokens

    def test_stop_words_and_short_tokens_dropped(self):
        tokens = TextProcessor().tokenize("the art of a deal")
        assert "the" not in tokens
        assert "of" not in tokens
        assert "art" in tokens

    def test_clean(self):
        assert TextProcessor().clean("  Design   Thinking ") == "design thinking"
        assert TextProcessor().clean("") == ""
