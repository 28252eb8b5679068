"""
TreePulse — Event Monitor

Records activation events and groups them into observation cycles.

History policy:
  - events and closed cycles live in ring buffers of `max_history_size`
  - overflow evicts from the head, the remainder keeps its order
  - shrinking the bound truncates both buffers immediately
  - an event belongs to the cycle that is open when it is recorded
"""
from collections import deque
from typing import Optional
from uuid import uuid4

from .config import Settings, get_settings
from .log import get_logger
from .metrics import activations_total, history_evictions
from .models import ActivationEvent, ObservationCycle, TriggerKind, utcnow

logger = get_logger()


# Host task-source fragments → trigger kind, checked in order.
TRIGGER_SOURCE_PATTERNS: list[tuple[tuple[str, ...], TriggerKind]] = [
    (("click", "input", "change"), TriggerKind.USER_INTERACTION),
    (("XMLHttpRequest", "fetch", "Promise"), TriggerKind.ASYNC_OPERATION),
    (("setTimeout", "setInterval"), TriggerKind.ASYNC_OPERATION),
]


def detect_trigger(source: Optional[str]) -> TriggerKind:
    """Classify a host task source string (e.g. 'HTMLButtonElement.addEventListener:click')."""
    if not source:
        return TriggerKind.UNKNOWN
    for fragments, kind in TRIGGER_SOURCE_PATTERNS:
        if any(fragment in source for fragment in fragments):
            return kind
    return TriggerKind.UNKNOWN


class EventMonitor:
    """Bounded activation history with cycle grouping."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self._max_history_size = settings.MAX_HISTORY_SIZE
        self._recent_window = settings.RECENT_EVENTS_WINDOW
        self._events: deque[ActivationEvent] = deque(maxlen=self._max_history_size)
        self._cycles: deque[ObservationCycle] = deque(maxlen=self._max_history_size)
        # Open cycles, innermost last. Events go to the innermost one.
        self._open_cycles: list[ObservationCycle] = []
        self._is_monitoring = False

    # ─── Monitoring flag ───────────────────────────────────────

    @property
    def is_monitoring(self) -> bool:
        return self._is_monitoring

    def start_monitoring(self) -> None:
        if self._is_monitoring:
            return
        self._is_monitoring = True
        logger.info("monitor.started", max_history_size=self._max_history_size)

    def stop_monitoring(self) -> None:
        self._is_monitoring = False
        logger.info("monitor.stopped", events=len(self._events), cycles=len(self._cycles))

    # ─── Cycles ────────────────────────────────────────────────

    def start_cycle(self) -> str:
        """Open a cycle. An already open cycle stays open underneath it."""
        cycle = ObservationCycle(id=f"cycle_{uuid4().hex[:12]}", start_time=utcnow())
        self._open_cycles.append(cycle)
        return cycle.id

    def end_cycle(self) -> None:
        if not self._open_cycles:
            return
        cycle = self._open_cycles.pop()
        cycle.end_time = utcnow()
        self._append(self._cycles, cycle.model_copy(deep=True), "cycles")

    def current_cycle(self) -> Optional[ObservationCycle]:
        if not self._open_cycles:
            return None
        return self._open_cycles[-1].model_copy(deep=True)

    # ─── Events ────────────────────────────────────────────────

    def record_event(
        self,
        node_id: str,
        trigger: TriggerKind = TriggerKind.UNKNOWN,
        is_manual: bool = False,
    ) -> ActivationEvent:
        event = ActivationEvent(
            id=f"event_{uuid4().hex[:12]}",
            timestamp=utcnow(),
            node_id=node_id,
            trigger=trigger,
            is_manual=is_manual,
        )
        self._append(self._events, event, "events")
        activations_total.labels(trigger=event.trigger.value).inc()

        if self._open_cycles:
            cycle = self._open_cycles[-1]
            cycle.events.append(event)
            if node_id not in cycle.affected_node_ids:
                cycle.affected_node_ids.append(node_id)

        return event

    def events(self) -> list[ActivationEvent]:
        return list(self._events)

    def recent_events(self) -> list[ActivationEvent]:
        """Last `RECENT_EVENTS_WINDOW` events, oldest first."""
        return list(self._events)[-self._recent_window:]

    def cycles(self) -> list[ObservationCycle]:
        return [cycle.model_copy(deep=True) for cycle in self._cycles]

    # ─── History bounds ────────────────────────────────────────

    @property
    def max_history_size(self) -> int:
        return self._max_history_size

    def set_max_history_size(self, size: int) -> None:
        if size < 1:
            raise ValueError(f"max history size must be >= 1, got {size}")
        dropped_events = max(0, len(self._events) - size)
        dropped_cycles = max(0, len(self._cycles) - size)

        self._max_history_size = size
        self._events = deque(self._events, maxlen=size)
        self._cycles = deque(self._cycles, maxlen=size)

        if dropped_events:
            history_evictions.labels(buffer="events").inc(dropped_events)
        if dropped_cycles:
            history_evictions.labels(buffer="cycles").inc(dropped_cycles)
        if dropped_events or dropped_cycles:
            logger.info(
                "monitor.history_trimmed",
                max_history_size=size,
                dropped_events=dropped_events,
                dropped_cycles=dropped_cycles,
            )

    def clear_history(self) -> None:
        self._events.clear()
        self._cycles.clear()

    def _append(self, buffer: deque, item, name: str) -> None:
        if len(buffer) == buffer.maxlen:
            history_evictions.labels(buffer=name).inc()
        buffer.append(item)
