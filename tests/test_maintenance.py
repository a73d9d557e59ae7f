"""
Tests for pruning, reinforcement and the Maintenance Scheduler.
"""

import threading
import time

import pytest

from conceptgraph.dynamics.maintenance import MaintenanceScheduler
from conceptgraph.dynamics.updates import (
    find_prune_candidates,
    prune_weak_edges,
    reinforce_frequent_edges,
)
from conceptgraph.errors import MaintenancePhaseFailure


@pytest.fixture
def star(entities, relations):
    """hub linked to five leaves with increasing strength."""
    entities.add_node("hub", "concept")
    for i, strength in enumerate([0.01, 0.02, 0.03, 0.05, 0.5]):
        entities.add_node(f"leaf{i}", "concept")
        relations.add_edge("hub", f"leaf{i}", "r", strength=strength)
    return relations


class TestPruning:
    """Test weak-edge removal."""

    def test_prunes_weakest_first_within_batch(self, star):
        removed = prune_weak_edges(star, threshold=0.1, min_traversals=2, batch_size=3)

        assert [e.target for e in removed] == ["leaf0", "leaf1", "leaf2"]
        assert len(star) == 2

    def test_never_prunes_traversed_edges(self, star):
        """Test that an edge with traversal_count >= 2 survives pruning."""
        star.record_traversal(("hub", "leaf0", "r"), count=2)

        for _ in range(5):
            prune_weak_edges(star, batch_size=3)

        assert ("hub", "leaf0", "r") in star
        assert ("hub", "leaf4", "r") in star
        assert len(star) == 2

    def test_single_traversal_does_not_protect(self, star):
        star.record_traversal(("hub", "leaf0", "r"))
        candidates = find_prune_candidates(star)
        assert ("hub", "leaf0", "r") in [e.key for e in candidates]

    def test_pruning_updates_neighbours(self, star):
        prune_weak_edges(star, batch_size=1)
        assert "leaf0" not in star.neighbors("hub")


class TestReinforcement:
    """Test reinforcement of frequently traversed edges."""

    def test_reinforces_above_threshold(self, star):
        star.record_traversal(("hub", "leaf4", "r"), count=11)
        star.record_traversal(("hub", "leaf3", "r"), count=10)

        changes = reinforce_frequent_edges(star, traversal_threshold=10, factor=1.1)

        assert [c[0] for c in changes] == [("hub", "leaf4", "r")]
        assert star.get_edge(("hub", "leaf4", "r")).strength == pytest.approx(0.55)
        assert star.get_edge(("hub", "leaf3", "r")).strength == pytest.approx(0.05)

    def test_reinforcement_clamped(self, star):
        key = ("hub", "leaf4", "r")
        star.record_traversal(key, count=50)
        for _ in range(20):
            reinforce_frequent_edges(star)

        assert star.get_edge(key).strength == 1.0


class TestScheduler:
    """Test tick execution, isolation and overlap handling."""

    def test_phases_run_in_order(self):
        calls = []
        scheduler = MaintenanceScheduler([
            ("inference", lambda: calls.append("inference")),
            ("pruning", lambda: calls.append("pruning")),
            ("metrics", lambda: calls.append("metrics")),
        ])

        report = scheduler.run_tick()

        assert calls == ["inference", "pruning", "metrics"]
        assert report.tick == 1
        assert report.completed_phases == ["inference", "pruning", "metrics"]
        assert scheduler.stats['ticks'] == 1

    def test_failing_phase_does_not_stop_later_phases(self):
        calls = []

        def broken():
            raise RuntimeError("boom")

        scheduler = MaintenanceScheduler([
            ("inference", broken),
            ("pruning", lambda: calls.append("pruning") or 3),
        ])

        report = scheduler.run_tick()

        assert calls == ["pruning"]
        assert report.failed_phases == ["inference"]
        assert report.result_of("pruning") == 3
        failure = report.outcomes[0].error
        assert isinstance(failure, MaintenancePhaseFailure)
        assert failure.phase == "inference"
        assert isinstance(failure.cause, RuntimeError)
        assert scheduler.stats['phase_failures'] == 1
        assert scheduler.failures_by_phase == {"inference": 1}

    def test_overlapping_tick_is_skipped(self):
        entered = threading.Event()
        release = threading.Event()

        def slow():
            entered.set()
            release.wait(timeout=5)

        scheduler = MaintenanceScheduler([("slow", slow)])
        worker = threading.Thread(target=scheduler.run_tick)
        worker.start()
        assert entered.wait(timeout=5)

        assert scheduler.tick_in_progress
        assert scheduler.run_tick() is None
        assert scheduler.stats['skipped_ticks'] == 1

        release.set()
        worker.join(timeout=5)
        assert scheduler.stats['ticks'] == 1

    def test_on_tick_callback(self):
        reports = []
        scheduler = MaintenanceScheduler([("noop", lambda: None)], on_tick=reports.append)

        scheduler.run_tick()
        scheduler.run_tick()

        assert [r.tick for r in reports] == [1, 2]

    def test_background_loop_ticks_and_stops(self):
        ticked = threading.Event()
        scheduler = MaintenanceScheduler([("noop", ticked.set)], interval_seconds=0.01)

        scheduler.start()
        assert scheduler.is_running()
        assert ticked.wait(timeout=5)
        scheduler.stop(wait=True, timeout=5)

        assert not scheduler.is_running()
        ticks = scheduler.stats['ticks']
        time.sleep(0.05)
        assert scheduler.stats['ticks'] == ticks

    def test_stop_interrupts_at_phase_boundary(self):
        entered = threading.Event()
        later = []

        scheduler = MaintenanceScheduler([
            ("first", lambda: entered.set() or time.sleep(0.2)),
            ("second", lambda: later.append("second")),
        ], interval_seconds=0.01)

        scheduler.start()
        assert entered.wait(timeout=5)
        scheduler.stop(wait=True, timeout=5)

        assert later == []
        assert scheduler.stats['interrupted_ticks'] == 1
        assert scheduler.last_report.interrupted

    def test_start_twice_is_harmless(self):
        scheduler = MaintenanceScheduler([("noop", lambda: None)], interval_seconds=10)
        scheduler.start()
        scheduler.start()
        scheduler.stop()
        assert not scheduler.is_running()

    def test_restart_after_non_blocking_stop(self):
        """Test that start() right after stop(wait=False) leaves one loop running."""
        entered = threading.Event()
        runners = []

        def slow_phase():
            runners.append(threading.current_thread())
            entered.set()
            time.sleep(0.05)

        scheduler = MaintenanceScheduler([("slow", slow_phase)], interval_seconds=0.01)
        scheduler.start()
        assert entered.wait(timeout=5)
        first_thread = scheduler._thread

        scheduler.stop(wait=False)
        scheduler.start()
        second_thread = scheduler._thread

        assert second_thread is not first_thread
        assert not first_thread.is_alive()

        del runners[:]
        time.sleep(0.3)
        assert scheduler.is_running()
        assert runners
        assert set(runners) == {second_thread}

        scheduler.stop(wait=True, timeout=5)
        assert not scheduler.is_running()
        assert not second_thread.is_alive()
