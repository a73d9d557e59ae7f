"""
Maintenance Scheduler: periodic background upkeep of the graph.

Each tick runs the registered phases in order (for the KnowledgeGraph:
inference, pruning, reinforcement, cluster rebalancing, metrics). Phases are
isolated: an exception is wrapped in MaintenancePhaseFailure, logged and
counted, and the next phase still runs.

Ticks never overlap. A tick requested while another is in progress is
skipped and counted. stop() prevents new ticks and interrupts a running tick
at the next phase boundary.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from conceptgraph.errors import MaintenancePhaseFailure

logger = logging.getLogger(__name__)


Phase = Tuple[str, Callable[[], Any]]


@dataclass
class PhaseOutcome:
    """Result of one phase within a tick."""
    name: str
    ok: bool
    result: Any = None
    error: Optional[MaintenancePhaseFailure] = None
    duration: float = 0.0


@dataclass
class TickReport:
    """
    Summary of one maintenance tick.

    Attributes:
        tick: Sequential tick number (1-based)
        started: Start timestamp
        duration: Wall time in seconds
        outcomes: Per-phase outcomes, in execution order
        interrupted: True if stop() cut the tick short
    """
    tick: int
    started: float
    duration: float = 0.0
    outcomes: List[PhaseOutcome] = field(default_factory=list)
    interrupted: bool = False

    @property
    def failed_phases(self) -> List[str]:
        return [o.name for o in self.outcomes if not o.ok]

    @property
    def completed_phases(self) -> List[str]:
        return [o.name for o in self.outcomes if o.ok]

    def result_of(self, phase: str) -> Any:
        for outcome in self.outcomes:
            if outcome.name == phase:
                return outcome.result
        return None


class MaintenanceScheduler:
    """
    Runs maintenance phases on a fixed interval in a daemon thread.

    Example:
        >>> scheduler = MaintenanceScheduler(
        ...     phases=[("pruning", prune), ("metrics", update_metrics)],
        ...     interval_seconds=60,
        ... )
        >>> scheduler.start()
        >>> # ... serve queries ...
        >>> scheduler.stop()
    """

    def __init__(
        self,
        phases: Sequence[Phase],
        interval_seconds: float = 60.0,
        on_tick: Optional[Callable[[TickReport], None]] = None,
        name: str = "conceptgraph-maintenance",
    ):
        """
        Args:
            phases: (name, callable) pairs run in order on every tick
            interval_seconds: Seconds between ticks
            on_tick: Optional callback receiving each completed TickReport
            name: Thread name
        """
        self.phases: List[Phase] = list(phases)
        self.interval_seconds = interval_seconds
        self.on_tick = on_tick
        self.name = name

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._tick_lock = threading.Lock()
        self._running = False
        self._tick = 0
        self.last_report: Optional[TickReport] = None

        self.stats = {
            'ticks': 0,
            'skipped_ticks': 0,
            'interrupted_ticks': 0,
            'phase_failures': 0,
        }
        self.failures_by_phase: Dict[str, int] = {}

    def start(self) -> None:
        """Start the background loop."""
        if self._running:
            logger.warning(f"Maintenance already running: {self.name}")
            return

        previous = self._thread
        if previous is not None and previous.is_alive():
            # A stop(wait=False) leaves the old loop draining its current tick.
            previous.join(timeout=5.0)
            if previous.is_alive():
                logger.warning(f"Maintenance not restarted: previous thread still running: {self.name}")
                return

        stop_event = threading.Event()
        self._stop_event = stop_event
        self._running = True

        self._thread = threading.Thread(
            target=self._loop,
            args=(stop_event,),
            name=self.name,
            daemon=True,
        )
        self._thread.start()

        logger.info(f"Maintenance started: interval={self.interval_seconds}s")

    def stop(self, wait: bool = True, timeout: float = 5.0) -> None:
        """
        Stop the background loop.

        Args:
            wait: Whether to wait for the thread to finish (default: True)
            timeout: Maximum time to wait in seconds (default: 5.0)
        """
        thread_alive = self._thread is not None and self._thread.is_alive()
        if not self._running and not thread_alive:
            return

        self._stop_event.set()
        self._running = False

        if wait and thread_alive:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Maintenance thread did not stop within timeout")

        logger.info(f"Maintenance stopped after {self.stats['ticks']} ticks")

    def is_running(self) -> bool:
        return self._running and self._thread is not None and self._thread.is_alive()

    def _loop(self, stop_event: threading.Event) -> None:
        logger.debug("Maintenance loop started")
        try:
            while not stop_event.is_set():
                if stop_event.wait(timeout=self.interval_seconds):
                    break
                self.run_tick(interruptible=True, stop_event=stop_event)
        finally:
            # Only the current loop owns the running flag.
            if self._thread is threading.current_thread():
                self._running = False
            logger.debug("Maintenance loop finished")

    def run_tick(
        self,
        interruptible: bool = False,
        stop_event: Optional[threading.Event] = None,
    ) -> Optional[TickReport]:
        """
        Run every phase once.

        Args:
            interruptible: Abandon remaining phases once stop() has been called
            stop_event: Event checked between phases (default: the scheduler's
                current stop event)

        Returns:
            TickReport, or None if another tick was already running
        """
        if not self._tick_lock.acquire(blocking=False):
            self.stats['skipped_ticks'] += 1
            logger.warning("Maintenance tick skipped: previous tick still running")
            return None

        if stop_event is None:
            stop_event = self._stop_event

        try:
            self._tick += 1
            report = TickReport(tick=self._tick, started=time.time())

            for name, phase in self.phases:
                if interruptible and stop_event.is_set():
                    report.interrupted = True
                    self.stats['interrupted_ticks'] += 1
                    logger.info(f"Maintenance tick {report.tick} interrupted before {name!r}")
                    break
                report.outcomes.append(self._run_phase(name, phase))

            report.duration = time.time() - report.started
            self.stats['ticks'] += 1
            self.last_report = report

            if report.failed_phases:
                logger.warning(f"Maintenance tick {report.tick} finished with failed phases: {report.failed_phases}")
            else:
                logger.debug(f"Maintenance tick {report.tick} finished in {report.duration:.3f}s")
        finally:
            self._tick_lock.release()

        if self.on_tick is not None:
            try:
                self.on_tick(report)
            except Exception as e:
                logger.exception(f"Error in maintenance tick callback: {e}")

        return report

    def _run_phase(self, name: str, phase: Callable[[], Any]) -> PhaseOutcome:
        started = time.time()
        try:
            result = phase()
        except Exception as e:
            failure = MaintenancePhaseFailure(name, e)
            self.stats['phase_failures'] += 1
            self.failures_by_phase[name] = self.failures_by_phase.get(name, 0) + 1
            logger.exception(str(failure))
            return PhaseOutcome(name, ok=False, error=failure, duration=time.time() - started)
        return PhaseOutcome(name, ok=True, result=result, duration=time.time() - started)

    @property
    def tick_in_progress(self) -> bool:
        return self._tick_lock.locked()

    def __repr__(self):
        return (
            f"MaintenanceScheduler(interval={self.interval_seconds}s, "
            f"running={self.is_running()}, ticks={self.stats['ticks']})"
        )
