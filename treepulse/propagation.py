"""
TreePulse — Propagation Tracker

Two concerns:
1. Depth derivation: a breadth-first walk over `propagated_from` links,
   seeded at every true origin (trigger source with no propagated_from).
   This is the only place propagation depth is computed.
2. Simulated cascade: marks an origin, then activates its descendants on
   a timer so the spread is watchable. Steps are timer handles tagged with
   the tracker generation; `cancel_all` bumps the generation and cancels
   every handle, so no step fires afterwards.

Ordering: a node's children are scheduled only when the node itself fires,
and each sibling is scheduled only when the previous sibling fires. Parents
therefore always precede descendants and siblings keep index order.
"""
import asyncio
import itertools
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Optional

from .config import Settings, get_settings
from .log import get_logger
from .metrics import propagation_steps
from .models import MonitorableNode, TriggerKind, TriggerSource
from .registry import NodeRegistry

logger = get_logger()

StepCallback = Callable[[str, TriggerKind], None]


def compute_propagation_depth(nodes: Iterable[MonitorableNode]) -> dict[str, int]:
    """
    Depth of every node reachable from a propagation origin.

    Nodes not reachable from any origin are absent. Each node is visited
    once, so cyclic or dangling `propagated_from` links terminate.
    """
    followers: dict[str, list[str]] = defaultdict(list)
    sources: list[str] = []
    for node in nodes:
        if node.propagated_from is not None:
            followers[node.propagated_from].append(node.id)
        elif node.trigger_source is not None:
            sources.append(node.id)

    depths: dict[str, int] = {}
    queue: deque[str] = deque()
    for source_id in sources:
        if source_id not in depths:
            depths[source_id] = 0
            queue.append(source_id)

    while queue:
        current = queue.popleft()
        for follower_id in followers.get(current, ()):
            if follower_id not in depths:
                depths[follower_id] = depths[current] + 1
                queue.append(follower_id)

    return depths


@dataclass
class PropagationCascade:
    """Handle for one simulated cascade."""
    cascade_id: int
    generation: int
    root_id: str
    trigger: TriggerKind
    steps_fired: int = 0
    cancelled: bool = False
    _handles: dict[int, asyncio.TimerHandle] = field(default_factory=dict, repr=False)
    _step_ids: Iterator[int] = field(default_factory=itertools.count, repr=False)
    _finished: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def pending(self) -> int:
        return len(self._handles)

    @property
    def done(self) -> bool:
        return self._finished.is_set()

    async def wait(self) -> None:
        await self._finished.wait()


class PropagationTracker:
    """Derives propagation depth and drives simulated cascades."""

    def __init__(
        self,
        registry: NodeRegistry,
        settings: Optional[Settings] = None,
        max_depth: Optional[int] = None,
        on_step: Optional[StepCallback] = None,
    ):
        settings = settings or get_settings()
        if settings.PROPAGATION_STEP_DELAY_MS < 0 or settings.PROPAGATION_SIBLING_DELAY_MS < 0:
            raise ValueError("propagation delays must be non-negative")
        self._registry = registry
        self._step_delay = settings.PROPAGATION_STEP_DELAY_MS / 1000.0
        self._sibling_delay = settings.PROPAGATION_SIBLING_DELAY_MS / 1000.0
        # Cascade depth cap for runaway protection; None follows the real tree.
        self.max_depth = max_depth if max_depth is not None else settings.PROPAGATION_MAX_DEPTH
        self.on_step = on_step
        self._generation = 0
        self._cascade_ids = itertools.count(1)
        self._cascades: dict[int, PropagationCascade] = {}

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def active_cascades(self) -> int:
        return len(self._cascades)

    def compute_propagation_depth(
        self, nodes: Optional[Iterable[MonitorableNode]] = None
    ) -> dict[str, int]:
        if nodes is None:
            nodes = self._registry.snapshot().nodes
        return compute_propagation_depth(nodes)

    # ─── Simulation ────────────────────────────────────────────

    def simulate(
        self,
        root_id: str,
        trigger_kind: TriggerKind = TriggerKind.MANUAL_TRIGGER,
        description: str = "",
        confidence: float = 1.0,
    ) -> Optional[PropagationCascade]:
        """
        Mark `root_id` as an origin and cascade activations to its
        descendants. Must be called with a running event loop.
        Returns None if the root is unknown.
        """
        loop = asyncio.get_running_loop()
        trigger = TriggerSource(kind=trigger_kind, confidence=confidence, details=description)
        if not self._registry.begin_propagation(root_id, trigger):
            logger.info("propagation.unknown_root", root_id=root_id)
            return None

        cascade = PropagationCascade(
            cascade_id=next(self._cascade_ids),
            generation=self._generation,
            root_id=root_id,
            trigger=trigger_kind,
        )
        self._cascades[cascade.cascade_id] = cascade
        logger.info(
            "propagation.started",
            cascade_id=cascade.cascade_id,
            root_id=root_id,
            trigger=trigger_kind.value,
            max_depth=self.max_depth,
        )

        self._schedule_children(loop, cascade, root_id, level=1)
        self._settle(cascade)
        return cascade

    def cancel_all(self) -> None:
        """Cancel every pending step of every cascade."""
        self._generation += 1
        cancelled_steps = 0
        for cascade in self._cascades.values():
            cancelled_steps += len(cascade._handles)
            self._abort(cascade)
        count = len(self._cascades)
        self._cascades.clear()

        if cancelled_steps:
            propagation_steps.labels(outcome="cancelled").inc(cancelled_steps)
        if count:
            logger.info(
                "propagation.cancelled",
                cascades=count,
                steps=cancelled_steps,
                generation=self._generation,
            )

    def cancel(self, cascade: PropagationCascade) -> None:
        if self._cascades.pop(cascade.cascade_id, None) is None:
            return
        if cascade._handles:
            propagation_steps.labels(outcome="cancelled").inc(len(cascade._handles))
        self._abort(cascade)

    # ─── Scheduling ────────────────────────────────────────────

    def _schedule_children(
        self,
        loop: asyncio.AbstractEventLoop,
        cascade: PropagationCascade,
        parent_id: str,
        level: int,
    ) -> None:
        if self.max_depth is not None and level > self.max_depth:
            return
        child_ids = self._registry.child_ids(parent_id)
        if child_ids:
            self._schedule(loop, cascade, self._step_delay, child_ids, 0, parent_id, level)

    def _schedule(
        self,
        loop: asyncio.AbstractEventLoop,
        cascade: PropagationCascade,
        delay: float,
        sibling_ids: list[str],
        index: int,
        parent_id: str,
        level: int,
    ) -> None:
        step_id = next(cascade._step_ids)
        cascade._handles[step_id] = loop.call_later(
            delay, self._fire, loop, cascade, step_id, sibling_ids, index, parent_id, level,
        )

    def _fire(
        self,
        loop: asyncio.AbstractEventLoop,
        cascade: PropagationCascade,
        step_id: int,
        sibling_ids: list[str],
        index: int,
        parent_id: str,
        level: int,
    ) -> None:
        cascade._handles.pop(step_id, None)
        if cascade.cancelled or cascade.generation != self._generation:
            propagation_steps.labels(outcome="stale").inc()
            return

        node_id = sibling_ids[index]
        if self._registry.increment_activation(node_id, propagated_from=parent_id):
            cascade.steps_fired += 1
            propagation_steps.labels(outcome="fired").inc()
            self._notify_step(node_id, cascade)
            self._schedule_children(loop, cascade, node_id, level + 1)
        else:
            # Node vanished in a re-scan since its parent fired.
            propagation_steps.labels(outcome="missing").inc()

        if index + 1 < len(sibling_ids):
            self._schedule(
                loop, cascade, self._sibling_delay, sibling_ids, index + 1, parent_id, level,
            )
        self._settle(cascade)

    def _notify_step(self, node_id: str, cascade: PropagationCascade) -> None:
        if self.on_step is None:
            return
        try:
            self.on_step(node_id, cascade.trigger)
        except Exception as e:
            logger.warning(
                "propagation.step_callback_failed",
                cascade_id=cascade.cascade_id,
                node_id=node_id,
                error=str(e),
            )

    def _settle(self, cascade: PropagationCascade) -> None:
        if cascade._handles or cascade.done:
            return
        self._cascades.pop(cascade.cascade_id, None)
        cascade._finished.set()
        logger.info(
            "propagation.completed",
            cascade_id=cascade.cascade_id,
            root_id=cascade.root_id,
            steps=cascade.steps_fired,
        )

    @staticmethod
    def _abort(cascade: PropagationCascade) -> None:
        for handle in cascade._handles.values():
            handle.cancel()
        cascade._handles.clear()
        cascade.cancelled = True
        cascade._finished.set()
