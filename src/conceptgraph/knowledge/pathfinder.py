"""
Pathfinder: direct and bounded multi-hop connections between concepts.

A direct edge is returned as-is (distance 1). Otherwise outgoing edges are
explored breadth-first up to `max_depth` hops. The strength of a path is the
product of its edge strengths, so long chains of weak edges score low. Among
indirect candidates the strongest path wins, shorter paths break ties.

Results are cached per endpoint pair and tagged with the Relation Store
version; any edge change makes the entry stale and it is recomputed on the
next request.
"""

import logging
import threading
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from conceptgraph.memory.relations import Edge, EdgeKey, RelationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PathRecord:
    """
    A path between two nodes.

    Attributes:
        source: Start node id
        target: End node id
        path: Node ids from source to target
        edges: Edge keys traversed, in order
        distance: Hop count
        strength: Product of traversed edge strengths
        indirect: True when distance > 1
    """
    source: str
    target: str
    path: Tuple[str, ...]
    edges: Tuple[EdgeKey, ...]
    distance: int
    strength: float
    indirect: bool

    def to_dict(self) -> Dict:
        return {
            'source': self.source,
            'target': self.target,
            'path': list(self.path),
            'edges': [list(k) for k in self.edges],
            'distance': self.distance,
            'strength': self.strength,
            'indirect': self.indirect,
        }


def _preference(record: PathRecord) -> Tuple[float, int]:
    return (record.strength, -record.distance)


class Pathfinder:
    """
    Cached path search over the Relation Store.

    find_path() may run under a shared read lock: cache updates and traversal
    counters are guarded by an internal mutex.
    """

    def __init__(self, relations: RelationStore, max_depth: int = 3, cache_size: int = 1024):
        """
        Args:
            relations: Relation Store to search
            max_depth: Default maximum hop count
            cache_size: Maximum cached endpoint pairs (0 disables caching)
        """
        self.relations = relations
        self.max_depth = max_depth
        self.cache_size = cache_size
        self._cache: "OrderedDict[Tuple[str, str, int], Tuple[int, Optional[PathRecord]]]" = OrderedDict()
        self._lock = threading.Lock()

        self.stats = {
            'queries': 0,
            'cache_hits': 0,
            'paths_found': 0,
            'edge_traversals': 0,
        }

    def find_path(self, source: str, target: str, max_depth: Optional[int] = None,
                  record_traversal: bool = True) -> Optional[PathRecord]:
        """
        Find the preferred path from source to target.

        Args:
            source: Start node id
            target: End node id
            max_depth: Hop limit (default: the pathfinder's max_depth)
            record_traversal: Increment traversal_count on every returned edge

        Returns:
            PathRecord, or None if either node is unknown, source == target,
            or no path exists within the hop limit
        """
        entities = self.relations.entities
        if source not in entities or target not in entities or source == target:
            return None

        depth = self.max_depth if max_depth is None else max_depth
        if depth < 1:
            return None
        cache_key = (source, target, depth)
        version = self.relations.version

        with self._lock:
            self.stats['queries'] += 1
            cached = self._cache.get(cache_key)
            if cached is not None and cached[0] == version:
                self._cache.move_to_end(cache_key)
                self.stats['cache_hits'] += 1
                record = cached[1]
            else:
                record = self._compute(source, target, depth)
                self._store(cache_key, version, record)

            if record is not None:
                self.stats['paths_found'] += 1
                if record_traversal:
                    for key in record.edges:
                        self.relations.record_traversal(key)
                    self.stats['edge_traversals'] += len(record.edges)

        return record

    def find_all_paths(self, source: str, target: str,
                       max_depth: Optional[int] = None) -> List[PathRecord]:
        """
        Every candidate path (direct and indirect), preferred first.

        Does not touch traversal counters or the cache.
        """
        entities = self.relations.entities
        if source not in entities or target not in entities or source == target:
            return []

        depth = self.max_depth if max_depth is None else max_depth
        if depth < 1:
            return []

        records = []
        direct = self._direct(source, target)
        if direct is not None:
            records.append(direct)
        records.extend(self._indirect(source, target, depth))
        return sorted(records, key=_preference, reverse=True)

    def invalidate(self, node_id: Optional[str] = None) -> int:
        """
        Drop cached entries.

        Args:
            node_id: Only drop entries with this endpoint (default: all)

        Returns:
            Number of entries removed
        """
        with self._lock:
            if node_id is None:
                removed = len(self._cache)
                self._cache.clear()
                return removed
            stale = [k for k in self._cache if node_id in (k[0], k[1])]
            for k in stale:
                del self._cache[k]
            return len(stale)

    @property
    def cached_paths(self) -> int:
        """Number of cache entries that are still valid."""
        version = self.relations.version
        with self._lock:
            return sum(
                1 for v, record in self._cache.values()
                if v == version and record is not None
            )

    # ------------------------------------------------------------------

    def _compute(self, source: str, target: str, depth: int) -> Optional[PathRecord]:
        direct = self._direct(source, target)
        if direct is not None:
            return direct

        candidates = self._indirect(source, target, depth)
        if not candidates:
            logger.debug(f"No path {source!r} -> {target!r} within {depth} hops")
            return None
        return max(candidates, key=_preference)

    def _direct(self, source: str, target: str) -> Optional[PathRecord]:
        edge = self.relations.strongest_edge(source, target, directed=True)
        if edge is None:
            return None
        return PathRecord(
            source=source,
            target=target,
            path=(source, target),
            edges=(edge.key,),
            distance=1,
            strength=edge.strength,
            indirect=False,
        )

    def _strongest_out_edges(self, node_id: str) -> List[Edge]:
        best: Dict[str, Edge] = {}
        for edge in self.relations.out_edges(node_id):
            current = best.get(edge.target)
            if current is None or edge.strength > current.strength:
                best[edge.target] = edge
        return list(best.values())

    def _indirect(self, source: str, target: str, depth: int) -> List[PathRecord]:
        """Breadth-first enumeration of simple paths with 2..depth hops."""
        records: List[PathRecord] = []
        queue = deque([((source,), (), 1.0)])

        while queue:
            path, edges, strength = queue.popleft()
            if len(edges) >= depth:
                continue

            for edge in self._strongest_out_edges(path[-1]):
                nxt = edge.target
                if nxt in path:
                    continue

                new_path = path + (nxt,)
                new_edges = edges + (edge.key,)
                new_strength = strength * edge.strength

                if nxt == target:
                    if len(new_edges) > 1:
                        records.append(PathRecord(
                            source=source,
                            target=target,
                            path=new_path,
                            edges=new_edges,
                            distance=len(new_edges),
                            strength=new_strength,
                            indirect=True,
                        ))
                    continue

                queue.append((new_path, new_edges, new_strength))

        return records

    def _store(self, cache_key, version: int, record: Optional[PathRecord]) -> None:
        if self.cache_size <= 0:
            return
        self._cache[cache_key] = (version, record)
        self._cache.move_to_end(cache_key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    def __repr__(self):
        return f"Pathfinder(max_depth={self.max_depth}, cached={len(self._cache)})"
