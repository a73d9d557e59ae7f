"""
Semantic Index: inverted index from text tokens to node ids.

Tokens come from a node's kind, its property keys and its string-valued
properties. Search combines direct id matches (relevance 1.0) with token
matches (relevance 0.8).
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from conceptgraph.ingestion.text_processor import TextProcessor
from conceptgraph.memory.entities import EntityStore, Node


DIRECT_RELEVANCE = 1.0
TOKEN_RELEVANCE = 0.8


@dataclass
class SearchResult:
    """A ranked search hit."""
    node_id: str
    relevance: float
    match_type: str  # 'direct' or 'semantic'
    node: Optional[Node] = None

    def to_dict(self) -> Dict:
        return {
            'node_id': self.node_id,
            'relevance': self.relevance,
            'match_type': self.match_type,
        }


class SemanticIndex:
    """
    Token -> node-id index over the Entity Store.

    Node id sets keep insertion order so that results are reproducible.
    """

    def __init__(self, entities: EntityStore, processor: Optional[TextProcessor] = None):
        self.entities = entities
        self.processor = processor or TextProcessor()
        self._index: Dict[str, Dict[str, None]] = {}
        self._node_tokens: Dict[str, List[str]] = {}

    def tokens_for(self, node: Node) -> List[str]:
        """Index tokens of a node: whole cleaned texts plus their word tokens."""
        texts = [node.kind, *node.properties.keys(), *node.properties.string_values()]
        tokens: List[str] = []
        seen = set()
        for text in texts:
            cleaned = self.processor.clean(text)
            for token in [cleaned, *self.processor.tokenize(text)]:
                if token and token not in seen:
                    seen.add(token)
                    tokens.append(token)
        return tokens

    def index(self, node: Node) -> List[str]:
        """
        Insert a node under each of its tokens.

        Re-indexing a node first drops its previous tokens.

        Returns:
            Tokens the node is now indexed under
        """
        if node.id in self._node_tokens:
            self.remove(node.id)

        tokens = self.tokens_for(node)
        for token in tokens:
            self._index.setdefault(token, {})[node.id] = None
        self._node_tokens[node.id] = tokens
        return tokens

    def remove(self, node_id: str) -> None:
        for token in self._node_tokens.pop(node_id, []):
            ids = self._index.get(token)
            if ids is None:
                continue
            ids.pop(node_id, None)
            if not ids:
                del self._index[token]

    def lookup(self, token: str) -> Set[str]:
        """Node ids indexed under exactly this token (case-insensitive)."""
        return set(self._index.get(self.processor.clean(token), {}))

    def search(self, query: str, limit: int = 10) -> List[SearchResult]:
        """
        Rank nodes against a free-text query.

        A node whose id contains the query scores 1.0. A node indexed under a
        token containing the query scores 0.8. Each node appears once, with its
        best relevance; ties keep node insertion order.

        Args:
            query: Search text (case-insensitive)
            limit: Maximum number of results

        Returns:
            List of SearchResult, best first
        """
        q = self.processor.clean(query)
        if not q or limit <= 0:
            return []

        hits: Dict[str, SearchResult] = {}

        for node in self.entities:
            if q in node.id.lower():
                hits[node.id] = SearchResult(node.id, DIRECT_RELEVANCE, 'direct', node)

        for token, ids in self._index.items():
            if q not in token:
                continue
            for node_id in ids:
                if node_id in hits:
                    continue
                node = self.entities.get_node(node_id)
                if node is not None:
                    hits[node_id] = SearchResult(node_id, TOKEN_RELEVANCE, 'semantic', node)

        ranked = sorted(
            hits.values(),
            key=lambda r: (-r.relevance, self.entities.sequence_of(r.node_id)),
        )
        return ranked[:limit]

    @property
    def token_count(self) -> int:
        return len(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self):
        return f"SemanticIndex(tokens={len(self._index)}, nodes={len(self._node_tokens)})"
