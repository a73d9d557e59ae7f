"""
Deterministic node embeddings.

Each node is embedded from its kind and its properties only, so re-embedding
the same content always gives the same vector, in any process. The default
HashingEmbedder uses feature hashing: every feature string (the kind, each
key=value pair, each token of a string value) seeds its own Gaussian random
vector, the vectors are summed and the result is projected onto the unit
sphere. Nodes sharing features therefore point in similar directions.

A model-backed embedder can be plugged in through the Embedder protocol.
"""

import hashlib
from functools import lru_cache
from typing import Iterable, List, Mapping, Optional, Protocol

import numpy as np

from conceptgraph.ingestion.text_processor import TextProcessor
from conceptgraph.similarity import cosine_similarity


class Embedder(Protocol):
    """Anything that maps (kind, properties) to a fixed-length vector."""

    dimension: int

    def embed(self, kind: str, properties: Mapping) -> np.ndarray:
        ...


@lru_cache(maxsize=8192)
def _feature_vector(feature: str, dimension: int) -> np.ndarray:
    digest = hashlib.blake2b(feature.encode("utf-8"), digest_size=8).digest()
    seed = int.from_bytes(digest, "little") % (2 ** 32)
    vector = np.random.RandomState(seed).randn(dimension)
    vector.setflags(write=False)
    return vector


def _format_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip().lower()


class HashingEmbedder:
    """
    Feature-hashing embedder.

    Attributes:
        dimension: Embedding length
        kind_weight: Weight of the kind feature relative to property features
    """

    def __init__(self, dimension: int = 128, kind_weight: float = 1.0,
                 processor: Optional[TextProcessor] = None):
        """
        Args:
            dimension: Embedding length (default 128)
            kind_weight: Relative weight of the kind feature
            processor: Tokenizer for string property values
        """
        self.dimension = dimension
        self.kind_weight = kind_weight
        self.processor = processor or TextProcessor()

    def features(self, kind: str, properties: Mapping) -> List[str]:
        """
        Feature strings for a node, sorted so that property order is irrelevant.

        Args:
            kind: Node kind
            properties: Node properties

        Returns:
            Sorted, de-duplicated list of feature strings (kind feature excluded)
        """
        features = set()
        for token in self.processor.tokenize(kind):
            features.add(f"tok:{token}")
        for key, value in properties.items():
            features.add(f"kv:{key.lower()}={_format_value(value)}")
            if isinstance(value, str):
                for token in self.processor.tokenize(value):
                    features.add(f"tok:{token}")
        return sorted(features)

    def embed(self, kind: str, properties: Mapping) -> np.ndarray:
        """
        Embed a node.

        Args:
            kind: Node kind
            properties: Node properties

        Returns:
            np.ndarray: Shape (dimension,) unit vector
        """
        vector = self.kind_weight * _feature_vector(f"kind:{kind.lower()}", self.dimension)
        for feature in self.features(kind, properties):
            vector = vector + _feature_vector(feature, self.dimension)

        norm = np.linalg.norm(vector)
        if norm < 1e-12:
            return np.zeros(self.dimension)
        return vector / norm


class EmbeddingService:
    """
    Front for the configured embedder.

    Enforces the fixed dimension invariant and exposes similarity helpers.
    """

    def __init__(self, embedder: Optional[Embedder] = None, dimension: int = 128):
        self.embedder = embedder or HashingEmbedder(dimension=dimension)
        self.dimension = getattr(self.embedder, "dimension", dimension)
        if self.dimension != dimension:
            raise ValueError(
                f"Embedder dimension {self.dimension} does not match configured dimension {dimension}"
            )

    def embed(self, kind: str, properties: Mapping) -> np.ndarray:
        """
        Embed a node from its kind and properties.

        Returns:
            np.ndarray: Shape (dimension,) float vector

        Raises:
            ValueError: If the embedder returns a vector of the wrong shape
        """
        vector = np.asarray(self.embedder.embed(kind, properties), dtype=float)
        if vector.shape != (self.dimension,):
            raise ValueError(f"Expected embedding shape ({self.dimension},), got {vector.shape}")
        return vector.copy()

    def similarity(self, a: np.ndarray, b: np.ndarray) -> float:
        return cosine_similarity(a, b)

    def embed_many(self, items: Iterable) -> np.ndarray:
        """Embed (kind, properties) pairs into an (N, dimension) matrix."""
        rows = [self.embed(kind, properties) for kind, properties in items]
        if not rows:
            return np.empty((0, self.dimension))
        return np.vstack(rows)
