"""
TreePulse — Unit Tests: Event Monitor

Tests:
1. Cycle bookkeeping
2. History bounds and eviction order
3. Trigger detection from host task sources
"""
import pytest

from treepulse.config import Settings
from treepulse.models import TriggerKind
from treepulse.monitor import EventMonitor, detect_trigger


@pytest.fixture
def monitor():
    return EventMonitor(Settings(MAX_HISTORY_SIZE=100, RECENT_EVENTS_WINDOW=50))


# ═══════════════════════════════════════════════════════════
# 1. Cycles
# ═══════════════════════════════════════════════════════════

class TestCycles:
    """start_cycle / record_event / end_cycle."""

    def test_same_node_twice_in_one_cycle(self, monitor):
        monitor.start_cycle()
        monitor.record_event("X", TriggerKind.USER_INTERACTION)
        monitor.record_event("X", TriggerKind.USER_INTERACTION)
        monitor.end_cycle()

        cycles = monitor.cycles()
        assert len(cycles) == 1
        assert len(cycles[0].events) == 2
        assert len(cycles[0].affected_node_ids) == 1
        assert cycles[0].end_time is not None
        assert cycles[0].end_time >= cycles[0].start_time

    def test_affected_ids_keep_first_seen_order(self, monitor):
        monitor.start_cycle()
        for node_id in ["b", "a", "b", "c", "a"]:
            monitor.record_event(node_id)
        monitor.end_cycle()
        assert monitor.cycles()[0].affected_node_ids == ["b", "a", "c"]

    def test_end_cycle_without_open_cycle_is_noop(self, monitor):
        monitor.end_cycle()
        assert monitor.cycles() == []

    def test_events_outside_cycle_are_not_attached(self, monitor):
        monitor.record_event("early")
        cycle_id = monitor.start_cycle()
        monitor.record_event("inside")
        monitor.end_cycle()
        monitor.record_event("late")

        cycle = monitor.cycles()[0]
        assert cycle.id == cycle_id
        assert [e.node_id for e in cycle.events] == ["inside"]
        assert [e.node_id for e in monitor.events()] == ["early", "inside", "late"]

    def test_current_cycle_is_open_and_copied(self, monitor):
        assert monitor.current_cycle() is None
        monitor.start_cycle()
        monitor.record_event("n")
        current = monitor.current_cycle()
        assert current.is_open
        current.events.clear()
        assert len(monitor.current_cycle().events) == 1

    def test_nested_cycle_leaves_outer_open(self, monitor):
        outer = monitor.start_cycle()
        monitor.record_event("outer-1")
        inner = monitor.start_cycle()
        monitor.record_event("inner-1")
        monitor.end_cycle()
        assert monitor.current_cycle().id == outer
        monitor.record_event("outer-2")
        monitor.end_cycle()

        closed = {c.id: c for c in monitor.cycles()}
        assert [e.node_id for e in closed[inner].events] == ["inner-1"]
        assert [e.node_id for e in closed[outer].events] == ["outer-1", "outer-2"]

    def test_events_are_immutable(self, monitor):
        event = monitor.record_event("n", TriggerKind.SIGNAL_UPDATE, is_manual=True)
        assert event.is_manual is True
        with pytest.raises(Exception):
            event.node_id = "other"


# ═══════════════════════════════════════════════════════════
# 2. History Bounds
# ═══════════════════════════════════════════════════════════

class TestHistory:
    """Ring-buffer semantics for events and cycles."""

    def test_bound_keeps_last_k_in_order(self):
        monitor = EventMonitor(Settings(MAX_HISTORY_SIZE=5))
        for i in range(12):
            monitor.record_event(f"n{i}")
        assert [e.node_id for e in monitor.events()] == ["n7", "n8", "n9", "n10", "n11"]

    def test_shrinking_truncates_immediately(self, monitor):
        for i in range(10):
            monitor.start_cycle()
            monitor.record_event(f"n{i}")
            monitor.end_cycle()
        monitor.set_max_history_size(3)

        assert [e.node_id for e in monitor.events()] == ["n7", "n8", "n9"]
        assert [c.events[0].node_id for c in monitor.cycles()] == ["n7", "n8", "n9"]

        monitor.record_event("n10")
        assert [e.node_id for e in monitor.events()] == ["n8", "n9", "n10"]

    def test_growing_keeps_existing(self, monitor):
        monitor.set_max_history_size(2)
        monitor.record_event("a")
        monitor.record_event("b")
        monitor.set_max_history_size(4)
        monitor.record_event("c")
        assert [e.node_id for e in monitor.events()] == ["a", "b", "c"]
        assert monitor.max_history_size == 4

    def test_invalid_size(self, monitor):
        with pytest.raises(ValueError):
            monitor.set_max_history_size(0)

    def test_recent_events_window(self, monitor):
        for i in range(80):
            monitor.record_event(f"n{i}")
        recent = monitor.recent_events()
        assert len(recent) == 50
        assert recent[0].node_id == "n30"
        assert recent[-1].node_id == "n79"

    def test_clear_history(self, monitor):
        monitor.start_cycle()
        monitor.record_event("a")
        monitor.end_cycle()
        monitor.clear_history()
        assert monitor.events() == []
        assert monitor.cycles() == []

    def test_monitoring_flag(self, monitor):
        assert monitor.is_monitoring is False
        monitor.start_monitoring()
        monitor.start_monitoring()
        assert monitor.is_monitoring is True
        monitor.stop_monitoring()
        assert monitor.is_monitoring is False


# ═══════════════════════════════════════════════════════════
# 3. Trigger Detection
# ═══════════════════════════════════════════════════════════

class TestTriggerDetection:

    @pytest.mark.parametrize("source,expected", [
        ("HTMLButtonElement.addEventListener:click", TriggerKind.USER_INTERACTION),
        ("HTMLInputElement.addEventListener:input", TriggerKind.USER_INTERACTION),
        ("XMLHttpRequest.send", TriggerKind.ASYNC_OPERATION),
        ("Promise.then", TriggerKind.ASYNC_OPERATION),
        ("setTimeout", TriggerKind.ASYNC_OPERATION),
        ("requestAnimationFrame", TriggerKind.UNKNOWN),
        (None, TriggerKind.UNKNOWN),
    ])
    def test_detect_trigger(self, source, expected):
        assert detect_trigger(source) == expected


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
