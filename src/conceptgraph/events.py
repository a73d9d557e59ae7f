"""
Typed graph events and a synchronous publish/subscribe bus.

Subscribers register for one event class (or for every event with
subscribe_all) and are called in registration order on the publishing thread.
A subscriber that raises is logged and skipped; the remaining subscribers still
run and the publisher never sees the error.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Tuple, Type

from conceptgraph.memory.relations import EdgeKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GraphEvent:
    """Base class for every event; `timestamp` is set on creation."""
    timestamp: float = field(default_factory=time.time, init=False)

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['event'] = self.name
        return data


@dataclass(frozen=True)
class NodeAdded(GraphEvent):
    node_id: str = ""
    kind: str = ""


@dataclass(frozen=True)
class EdgeAdded(GraphEvent):
    key: Optional[EdgeKey] = None
    inferred: bool = False


@dataclass(frozen=True)
class EdgeRemoved(GraphEvent):
    key: Optional[EdgeKey] = None
    reason: str = ""  # 'pruned' or 'explicit'


@dataclass(frozen=True)
class InferenceComplete(GraphEvent):
    proposed: int = 0
    accepted: Tuple[EdgeKey, ...] = ()


@dataclass(frozen=True)
class ClustersRebalanced(GraphEvent):
    split: Tuple[Tuple[str, str, str], ...] = ()
    merged: Tuple[Tuple[str, str, str], ...] = ()
    destroyed: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MaintenanceComplete(GraphEvent):
    tick: int = 0
    failed_phases: Tuple[str, ...] = ()
    metrics: Dict = field(default_factory=dict)


@dataclass(frozen=True)
class GraphReady(GraphEvent):
    nodes: int = 0
    edges: int = 0
    clusters: int = 0


Subscriber = Callable[[GraphEvent], None]


class EventBus:
    """
    Synchronous observer registry with a bounded event history.

    Example:
        >>> bus = EventBus()
        >>> unsubscribe = bus.subscribe(NodeAdded, lambda e: print(e.node_id))
        >>> bus.publish(NodeAdded(node_id="ai", kind="domain"))
        ai
        >>> unsubscribe()
    """

    def __init__(self, history_size: int = 256):
        self._subscribers: Dict[Optional[Type[GraphEvent]], List[Subscriber]] = {}
        self._lock = threading.Lock()
        self.history: Deque[GraphEvent] = deque(maxlen=history_size)
        self.stats = {
            'published': 0,
            'delivered': 0,
            'subscriber_errors': 0,
        }

    def subscribe(self, event_type: Type[GraphEvent], callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for one event class (subclasses included).

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(event_type, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def subscribe_all(self, callback: Subscriber) -> Callable[[], None]:
        return self.subscribe(GraphEvent, callback)

    def publish(self, event: GraphEvent) -> int:
        """
        Deliver an event to matching subscribers.

        Returns:
            Number of subscribers that handled the event without raising
        """
        with self._lock:
            self.history.append(event)
            self.stats['published'] += 1
            callbacks = [
                cb
                for event_type, cbs in self._subscribers.items()
                if isinstance(event, event_type)
                for cb in cbs
            ]

        delivered = 0
        for callback in callbacks:
            try:
                callback(event)
                delivered += 1
            except Exception as e:
                with self._lock:
                    self.stats['subscriber_errors'] += 1
                logger.warning(f"Subscriber {callback!r} failed on {event.name}: {e}")

        with self._lock:
            self.stats['delivered'] += delivered
        return delivered

    def recent(self, event_type: Optional[Type[GraphEvent]] = None, limit: int = 50) -> List[GraphEvent]:
        """Most recent events, oldest first, optionally filtered by class."""
        with self._lock:
            events = list(self.history)
        if event_type is not None:
            events = [e for e in events if isinstance(e, event_type)]
        return events[-limit:] if limit > 0 else []

    def __repr__(self):
        count = sum(len(cbs) for cbs in self._subscribers.values())
        return f"EventBus(subscribers={count}, history={len(self.history)})"
