"""
Inference Engine: rule-based derivation of new edges.

Rules:

- transitivity: A→B (s1), B→C (s2), A ≠ C  ⟹  A→C "inferred_<label of A→B>",
  strength s1·s2·0.7, confidence 0.8
- similarity: unlinked A, B with σ(e_A, e_B) > 0.75  ⟹  A→B
  "semantically_similar", strength σ·0.6, confidence 0.7 (off by default)
- clustering: unlinked members of one cluster  ⟹  A→B "inferred_co_cluster",
  strength coherence·0.8, confidence 0.9 (off by default)

A conclusion whose (source, target, relation) triple already exists is
discarded. At most `max_per_cycle` conclusions are accepted per run; premise
edges of an accepted conclusion get their traversal counter incremented.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple

import numpy as np

from conceptgraph.memory.relations import EdgeKey, RelationStore
from conceptgraph.similarity import cosine_similarity_matrix

logger = logging.getLogger(__name__)


INFERRED_PREFIX = "inferred_"
SIMILAR_RELATION = "semantically_similar"
CO_CLUSTER_RELATION = "inferred_co_cluster"


@dataclass
class InferenceRule:
    """
    A registered inference rule.

    Attributes:
        name: Rule name
        strength_multiplier: Factor applied to the conclusion's strength
        confidence: Confidence attached to conclusions
        enabled: Whether run() applies the rule
        description: Human-readable summary
    """
    name: str
    strength_multiplier: float
    confidence: float
    enabled: bool = True
    description: str = ""


@dataclass
class Proposal:
    """A candidate edge produced by a rule."""
    source: str
    target: str
    relation: str
    strength: float
    confidence: float
    rule: str
    premises: Tuple[EdgeKey, ...] = ()

    @property
    def key(self) -> EdgeKey:
        return EdgeKey(self.source, self.target, self.relation)


@dataclass
class InferenceResult:
    """Outcome of one inference run."""
    proposed: int = 0
    accepted: List[EdgeKey] = field(default_factory=list)
    duplicates: int = 0
    by_rule: Counter = field(default_factory=Counter)

    def to_dict(self) -> Dict:
        return {
            'proposed': self.proposed,
            'accepted': [list(k) for k in self.accepted],
            'duplicates': self.duplicates,
            'by_rule': dict(self.by_rule),
        }


def base_relation(relation: str) -> str:
    """Strip the inferred prefix so derived labels do not stack."""
    while relation.startswith(INFERRED_PREFIX):
        relation = relation[len(INFERRED_PREFIX):]
    return relation


class InferenceEngine:
    """
    Applies registered rules to the Relation Store.

    Callers serialise run() with other writers.
    """

    def __init__(
        self,
        relations: RelationStore,
        decay: float = 0.7,
        confidence: float = 0.8,
        max_per_cycle: int = 5,
        similarity_enabled: bool = False,
        similarity_threshold: float = 0.75,
        clustering_enabled: bool = False,
        cluster_provider: Optional[Callable[[], List[Tuple[List[str], float]]]] = None,
    ):
        """
        Args:
            relations: Relation Store to read premises from and write conclusions to
            decay: Strength multiplier for transitive conclusions
            confidence: Confidence of transitive conclusions
            max_per_cycle: Maximum accepted conclusions per run
            similarity_enabled: Enable the embedding-similarity rule
            similarity_threshold: Minimum cosine similarity for that rule
            clustering_enabled: Enable the co-cluster rule
            cluster_provider: Returns (members, coherence) for every cluster;
                required by the clustering rule
        """
        self.relations = relations
        self.max_per_cycle = max_per_cycle
        self.similarity_threshold = similarity_threshold
        self.cluster_provider = cluster_provider

        self.rules: Dict[str, InferenceRule] = {}
        self.register(InferenceRule(
            'transitivity', decay, confidence,
            description="A→B and B→C imply A→C",
        ))
        self.register(InferenceRule(
            'similarity', 0.6, 0.7, enabled=similarity_enabled,
            description="Similar embeddings imply a semantic link",
        ))
        self.register(InferenceRule(
            'clustering', 0.8, 0.9, enabled=clustering_enabled,
            description="Members of one cluster are related",
        ))

        self._generators = {
            'transitivity': self._transitivity,
            'similarity': self._similarity,
            'clustering': self._clustering,
        }

        self.stats = {
            'runs': 0,
            'edges_inferred': 0,
            'duplicates_discarded': 0,
        }

    def register(self, rule: InferenceRule) -> None:
        self.rules[rule.name] = rule

    def enable(self, name: str, enabled: bool = True) -> None:
        if name not in self.rules:
            raise KeyError(f"Unknown inference rule: {name!r}")
        self.rules[name].enabled = enabled

    def propose(self) -> Iterator[Proposal]:
        """Yield conclusions of every enabled rule, in registration order."""
        for name, rule in self.rules.items():
            generator = self._generators.get(name)
            if rule.enabled and generator is not None:
                yield from generator(rule)

    def run(self, cap: Optional[int] = None) -> InferenceResult:
        """
        Apply enabled rules and insert accepted conclusions.

        Args:
            cap: Maximum new edges (default: max_per_cycle)

        Returns:
            InferenceResult
        """
        cap = self.max_per_cycle if cap is None else cap
        result = InferenceResult()
        seen = set()

        if cap > 0:
            for proposal in self.propose():
                result.proposed += 1
                key = proposal.key
                if key in seen or key in self.relations:
                    result.duplicates += 1
                    continue
                seen.add(key)

                self.relations.add_edge(
                    proposal.source,
                    proposal.target,
                    proposal.relation,
                    strength=proposal.strength,
                    properties={'rule': proposal.rule, 'source': 'inference'},
                    inferred=True,
                    confidence=proposal.confidence,
                    derived_from=proposal.premises,
                )
                for premise in proposal.premises:
                    self.relations.record_traversal(premise)

                result.accepted.append(key)
                result.by_rule[proposal.rule] += 1
                if len(result.accepted) >= cap:
                    break

        self.stats['runs'] += 1
        self.stats['edges_inferred'] += len(result.accepted)
        self.stats['duplicates_discarded'] += result.duplicates
        if result.accepted:
            logger.debug(f"Inference accepted {len(result.accepted)} of {result.proposed} proposals")
        return result

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _transitivity(self, rule: InferenceRule) -> Iterator[Proposal]:
        for first in self.relations.edges():
            for second in self.relations.out_edges(first.target):
                if second.target == first.source:
                    continue
                yield Proposal(
                    source=first.source,
                    target=second.target,
                    relation=INFERRED_PREFIX + base_relation(first.relation),
                    strength=first.strength * second.strength * rule.strength_multiplier,
                    confidence=rule.confidence,
                    rule=rule.name,
                    premises=(first.key, second.key),
                )

    def _similarity(self, rule: InferenceRule) -> Iterator[Proposal]:
        entities = self.relations.entities
        node_ids = entities.node_ids()
        if len(node_ids) < 2:
            return
        sims = cosine_similarity_matrix(entities.embedding_matrix(node_ids))
        rows, cols = np.triu_indices(len(node_ids), k=1)
        for i, j in zip(rows, cols):
            sim = float(sims[i, j])
            if sim <= self.similarity_threshold:
                continue
            a, b = node_ids[i], node_ids[j]
            if self.relations.are_connected(a, b):
                continue
            yield Proposal(
                source=a,
                target=b,
                relation=SIMILAR_RELATION,
                strength=min(1.0, max(0.0, sim * rule.strength_multiplier)),
                confidence=rule.confidence,
                rule=rule.name,
            )

    def _clustering(self, rule: InferenceRule) -> Iterator[Proposal]:
        if self.cluster_provider is None:
            return
        for members, coherence in self.cluster_provider():
            for i, a in enumerate(members):
                for b in members[i + 1:]:
                    if self.relations.are_connected(a, b):
                        continue
                    yield Proposal(
                        source=a,
                        target=b,
                        relation=CO_CLUSTER_RELATION,
                        strength=min(1.0, coherence * rule.strength_multiplier),
                        confidence=rule.confidence,
                        rule=rule.name,
                    )

    def summary(self) -> Dict:
        return {
            'rules': {
                name: {
                    'enabled': rule.enabled,
                    'strength_multiplier': rule.strength_multiplier,
                    'confidence': rule.confidence,
                    'description': rule.description,
                }
                for name, rule in self.rules.items()
            },
            'stats': self.stats.copy(),
        }

    def __repr__(self):
        enabled = [n for n, r in self.rules.items() if r.enabled]
        return f"InferenceEngine(rules={enabled}, max_per_cycle={self.max_per_cycle})"
