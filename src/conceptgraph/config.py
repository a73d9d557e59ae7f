"""
Configuration for the knowledge graph.

Every tunable constant of the engine lives on GraphConfig. The defaults give
128-dim embeddings, depth-3 pathfinding, transitivity decay 0.7, pruning below
0.1 strength, reinforcement after 10 traversals and a 60 second maintenance
tick.

Values can be overridden from the environment (or a .env file) with
GraphConfig.from_env(), e.g. CONCEPTGRAPH_MAX_DEPTH=4.
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from conceptgraph.errors import ConfigError


ENV_PREFIX = "CONCEPTGRAPH_"


@dataclass(frozen=True)
class GraphConfig:
    """
    Tunables for every component of the graph.

    Attributes:
        embedding_dim: Length of every node embedding
        max_depth: Maximum hop count explored by the pathfinder
        path_cache_size: Maximum number of cached path records (LRU)
        inference_decay: Strength multiplier applied to transitive conclusions
        inference_confidence: Confidence attached to transitive conclusions
        max_inferences_per_cycle: New edges the inference engine may add per tick
        similarity_rule_enabled: Whether the embedding-similarity rule runs
        similarity_rule_threshold: Minimum cosine similarity for the similarity rule
        clustering_rule_enabled: Whether the co-cluster rule runs
        prune_strength_threshold: Edges weaker than this are prune candidates
        prune_min_traversals: Edges traversed at least this often are never pruned
        prune_batch_size: Maximum edges removed per tick
        reinforce_traversal_threshold: Edges traversed more than this are reinforced
        reinforce_factor: Multiplicative reinforcement factor
        cluster_strength_threshold: Minimum strength for cluster discovery/assignment
        split_connectivity: Clusters below this connectivity are split
        merge_connectivity: Small clusters above this connectivity are merged
        merge_max_size: Only clusters smaller than this are merged
        merge_similarity_threshold: Minimum centroid similarity for a merge
        related_similarity_threshold: Minimum cosine similarity for related concepts
        maintenance_interval: Seconds between maintenance ticks
        event_history_size: Number of recent events kept by the event bus
    """
    embedding_dim: int = 128
    max_depth: int = 3
    path_cache_size: int = 1024
    inference_decay: float = 0.7
    inference_confidence: float = 0.8
    max_inferences_per_cycle: int = 5
    similarity_rule_enabled: bool = False
    similarity_rule_threshold: float = 0.75
    clustering_rule_enabled: bool = False
    prune_strength_threshold: float = 0.1
    prune_min_traversals: int = 2
    prune_batch_size: int = 3
    reinforce_traversal_threshold: int = 10
    reinforce_factor: float = 1.1
    cluster_strength_threshold: float = 0.6
    split_connectivity: float = 0.5
    merge_connectivity: float = 0.9
    merge_max_size: int = 3
    merge_similarity_threshold: float = 0.5
    related_similarity_threshold: float = 0.7
    maintenance_interval: float = 60.0
    event_history_size: int = 256

    def __post_init__(self):
        if self.embedding_dim < 1:
            raise ConfigError(f"embedding_dim must be positive, got {self.embedding_dim}")
        if self.max_depth < 1:
            raise ConfigError(f"max_depth must be >= 1, got {self.max_depth}")
        if self.path_cache_size < 0:
            raise ConfigError("path_cache_size must be >= 0")
        if self.max_inferences_per_cycle < 0 or self.prune_batch_size < 0:
            raise ConfigError("per-tick batch caps must be >= 0")
        if self.reinforce_factor < 1.0:
            raise ConfigError(f"reinforce_factor must be >= 1.0, got {self.reinforce_factor}")
        if self.maintenance_interval <= 0:
            raise ConfigError("maintenance_interval must be positive")

        for name in (
            "inference_decay",
            "inference_confidence",
            "similarity_rule_threshold",
            "prune_strength_threshold",
            "cluster_strength_threshold",
            "split_connectivity",
            "merge_connectivity",
            "related_similarity_threshold",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"{name} must be in [0, 1], got {value}")

        if not -1.0 <= self.merge_similarity_threshold <= 1.0:
            raise ConfigError("merge_similarity_threshold must be in [-1, 1]")

    def with_overrides(self, **overrides) -> "GraphConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **overrides)

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None,
                 prefix: str = ENV_PREFIX) -> "GraphConfig":
        """
        Build a config from environment variables.

        Loads `env_file` (or the nearest .env) first without overriding
        variables that are already set, then reads PREFIX + FIELD_NAME for
        every field.

        Args:
            env_file: Optional path to a .env file
            prefix: Variable name prefix

        Returns:
            GraphConfig with environment overrides applied

        Raises:
            ConfigError: If a variable cannot be parsed or is out of range
        """
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()

        overrides = {}
        for f in fields(cls):
            raw = os.getenv(prefix + f.name.upper())
            if raw is None or raw.strip() == "":
                continue
            overrides[f.name] = _parse(f.name, raw.strip(), type(getattr(cls, f.name)))

        return cls(**overrides)


def _parse(name: str, raw: str, kind: type):
    try:
        if kind is bool:
            lowered = raw.lower()
            if lowered in ("1", "true", "yes", "on"):
                return True
            if lowered in ("0", "false", "no", "off"):
                return False
            raise ValueError(raw)
        if kind is int:
            return int(raw)
        return float(raw)
    except ValueError:
        raise ConfigError(f"Cannot parse {ENV_PREFIX}{name.upper()}={raw!r}") from None
