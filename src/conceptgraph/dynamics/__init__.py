"""Maintenance dynamics: pruning, reinforcement and the background scheduler."""

from conceptgraph.dynamics.maintenance import MaintenanceScheduler, PhaseOutcome, TickReport
from conceptgraph.dynamics.updates import (
    find_prune_candidates,
    prune_weak_edges,
    reinforce_frequent_edges,
)

__all__ = [
    "MaintenanceScheduler",
    "TickReport",
    "PhaseOutcome",
    "find_prune_candidates",
    "prune_weak_edges",
    "reinforce_frequent_edges",
]
