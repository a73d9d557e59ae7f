"""Tokenization and embedding of incoming concepts."""

from conceptgraph.ingestion.embeddings import Embedder, EmbeddingService, HashingEmbedder
from conceptgraph.ingestion.text_processor import TextProcessor

__all__ = ["Embedder", "EmbeddingService", "HashingEmbedder", "TextProcessor"]
