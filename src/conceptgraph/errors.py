"""
Error taxonomy for the knowledge graph.

Ingestion errors are raised synchronously to the caller before any state is
written. Query operations never raise for missing nodes; they return empty
results instead. Maintenance failures are wrapped in MaintenancePhaseFailure,
logged, and counted by the scheduler.
"""

from typing import Optional


class GraphError(Exception):
    """Base class for every error raised by conceptgraph."""


class UnknownNode(GraphError, KeyError):
    """An operation referenced a node id that is not in the Entity Store."""

    def __init__(self, node_id: str):
        super().__init__(node_id)
        self.node_id = node_id

    def __str__(self):
        return f"Unknown node: {self.node_id!r}"


class UnknownEdge(GraphError, KeyError):
    """An operation referenced an edge key that is not in the Relation Store."""

    def __init__(self, key):
        super().__init__(key)
        self.key = key

    def __str__(self):
        return f"Unknown edge: {tuple(self.key)!r}"


class UnknownCluster(GraphError, KeyError):
    def __init__(self, cluster_id: str):
        super().__init__(cluster_id)
        self.cluster_id = cluster_id

    def __str__(self):
        return f"Unknown cluster: {self.cluster_id!r}"


class DuplicateId(GraphError, ValueError):
    """A node with the same id already exists."""

    def __init__(self, node_id: str):
        super().__init__(f"Node already exists: {node_id!r}")
        self.node_id = node_id


class DuplicateEdge(GraphError, ValueError):
    """An edge with the same (source, target, relation) triple already exists.

    Callers that want to change the strength of an existing edge must use
    reinforce() or decay() instead of re-inserting it.
    """

    def __init__(self, key):
        super().__init__(f"Edge already exists: {tuple(key)!r}")
        self.key = key


class InvalidWeight(GraphError, ValueError):
    def __init__(self, weight):
        super().__init__(f"Node weight must be in [0, 1], got {weight!r}")
        self.weight = weight


class InvalidStrength(GraphError, ValueError):
    def __init__(self, strength, what: str = "Edge strength"):
        super().__init__(f"{what} must be in [0, 1], got {strength!r}")
        self.strength = strength


class InvalidNodeSpec(GraphError, ValueError):
    """Malformed node specification (missing id or kind, wrong types)."""


class InvalidEdgeSpec(GraphError, ValueError):
    """Malformed relation specification (missing endpoints or type)."""


class InvalidProperty(GraphError, ValueError):
    """A property value is not a scalar (str, int, float) or bool."""


class SelfLoop(GraphError, ValueError):
    def __init__(self, node_id: str):
        super().__init__(f"Edges from a node to itself are not allowed: {node_id!r}")
        self.node_id = node_id


class ConfigError(GraphError, ValueError):
    """Invalid GraphConfig value."""


class MaintenancePhaseFailure(GraphError):
    """
    A single maintenance phase raised.

    The scheduler records this failure in its tick report and logs it, then
    continues with the next phase.

    Attributes:
        phase: Name of the failed phase (e.g. "inference", "pruning")
        cause: Original exception
    """

    def __init__(self, phase: str, cause: Optional[BaseException] = None):
        message = f"Maintenance phase {phase!r} failed"
        if cause is not None:
            message += f": {type(cause).__name__}: {cause}"
        super().__init__(message)
        self.phase = phase
        self.cause = cause
