"""Knowledge module for pathfinding, clustering and inference."""

from .clusters import Cluster, ClusterManager, RebalanceResult
from .inference import InferenceEngine, InferenceResult, InferenceRule
from .pathfinder import Pathfinder, PathRecord

__all__ = [
    'Pathfinder',
    'PathRecord',
    'Cluster',
    'ClusterManager',
    'RebalanceResult',
    'InferenceEngine',
    'InferenceRule',
    'InferenceResult',
]
