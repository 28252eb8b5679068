"""
TreePulse — Visualizer Service

Wires the registry, monitor, propagation tracker, layout engine and query
facade together. Nothing here is a process-wide singleton: build one
service per monitored application, or pass in your own collaborators.

Lifecycle:
  start_monitoring  → monitor flag on, immediate scan, periodic re-scan task
  stop_monitoring   → re-scan task cancelled, cascades cancelled,
                      tree and history left as they are
  clear_history     → events, cycles and activation counters wiped
"""
import asyncio
import json
from typing import Any, Optional

from .config import Settings, get_settings
from .host import RootSupplier
from .layout import GraphLayoutEngine
from .log import configure_logging, get_logger
from .models import (
    ActivationEvent, GraphView, MonitorableNode, TriggerKind, utcnow,
)
from .monitor import EventMonitor
from .propagation import PropagationCascade, PropagationTracker
from .queries import TreeQueryFacade
from .registry import NodeRegistry

logger = get_logger()


class VisualizerService:
    """Entry point for host adapters and visualization consumers."""

    def __init__(
        self,
        adapter: Optional[RootSupplier] = None,
        settings: Optional[Settings] = None,
        *,
        registry: Optional[NodeRegistry] = None,
        monitor: Optional[EventMonitor] = None,
        tracker: Optional[PropagationTracker] = None,
        layout_engine: Optional[GraphLayoutEngine] = None,
    ):
        if registry is not None and adapter is not None:
            raise ValueError("pass either an adapter or a registry, not both")
        self.settings = settings or get_settings()
        self.registry = registry or NodeRegistry(adapter)
        self.monitor = monitor or EventMonitor(self.settings)
        self.tracker = tracker or PropagationTracker(self.registry, self.settings)
        if self.tracker.on_step is None:
            self.tracker.on_step = self._record_step
        self.layout_engine = layout_engine or GraphLayoutEngine(self.settings)
        self.queries = TreeQueryFacade(self.registry)
        self._rescan_task: Optional[asyncio.Task] = None

    # ─── Monitoring lifecycle ──────────────────────────────────

    @property
    def is_monitoring(self) -> bool:
        return self.monitor.is_monitoring

    def start_monitoring(self) -> None:
        if not self.settings.ENABLED:
            logger.info("service.disabled", app_env=self.settings.APP_ENV)
            return

        self.monitor.start_monitoring()
        self.registry.scan()
        self._start_rescan_loop()
        logger.info(
            "service.started",
            nodes=self.registry.node_count,
            rescan_interval_ms=self.settings.RESCAN_INTERVAL_MS,
            periodic_rescan=self._rescan_task is not None,
        )

    def stop_monitoring(self) -> None:
        """Stop timers and cascades; the tree and history stay intact."""
        self.monitor.stop_monitoring()
        if self._rescan_task is not None:
            self._rescan_task.cancel()
            self._rescan_task = None
        self.tracker.cancel_all()
        logger.info("service.stopped", nodes=self.registry.node_count)

    def _start_rescan_loop(self) -> None:
        if self._rescan_task is not None and not self._rescan_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.info("service.periodic_rescan_unavailable", reason="no_running_loop")
            return
        self._rescan_task = loop.create_task(self._rescan_loop())

    async def _rescan_loop(self) -> None:
        interval = self.settings.RESCAN_INTERVAL_MS / 1000.0
        while True:
            await asyncio.sleep(interval)
            if self.settings.ENABLED and self.monitor.is_monitoring:
                self.registry.scan()

    def refresh(self) -> None:
        self.registry.scan()

    def clear_history(self) -> None:
        self.monitor.clear_history()
        self.registry.clear_counters()
        logger.info("service.history_cleared")

    def update_settings(self, **changes: Any) -> Settings:
        """
        Replace settings values at runtime. ENABLED starts or stops
        monitoring, history size and log verbosity apply at once; other
        collaborators pick changes up when they are rebuilt.
        """
        was_enabled = self.settings.ENABLED
        self.settings = Settings(**{**self.settings.model_dump(), **changes})
        if "MAX_HISTORY_SIZE" in changes:
            self.monitor.set_max_history_size(self.settings.MAX_HISTORY_SIZE)
        if "VERBOSE_LOGGING" in changes:
            configure_logging(self.settings.VERBOSE_LOGGING)
        if self.settings.ENABLED != was_enabled:
            if self.settings.ENABLED:
                self.start_monitoring()
            else:
                self.stop_monitoring()
        return self.settings

    # ─── Trigger injection ─────────────────────────────────────

    def record_activation(
        self,
        node_id: str,
        trigger: TriggerKind = TriggerKind.UNKNOWN,
        is_manual: bool = False,
    ) -> Optional[ActivationEvent]:
        """Record an event and count it on the node. Unknown ids are ignored."""
        if node_id not in self.registry:
            logger.debug("service.unknown_node", node_id=node_id)
            return None
        event = self.monitor.record_event(node_id, trigger, is_manual)
        self.registry.increment_activation(node_id)
        return event

    def simulate(
        self,
        root_id: str,
        trigger: TriggerKind = TriggerKind.MANUAL_TRIGGER,
        description: str = "",
    ) -> Optional[PropagationCascade]:
        cascade = self.tracker.simulate(root_id, trigger, description)
        if cascade is not None:
            self.monitor.record_event(root_id, trigger, is_manual=True)
        return cascade

    def _record_step(self, node_id: str, trigger: TriggerKind) -> None:
        self.monitor.record_event(node_id, trigger, is_manual=True)

    # ─── Views ─────────────────────────────────────────────────

    def filtered_tree(self) -> list[MonitorableNode]:
        return self.queries.filter_nodes(
            mode=self.settings.FILTER_MODE,
            exclude=self.settings.EXCLUDE_NODES,
            show_only_changes=self.settings.SHOW_ONLY_CHANGES,
        )

    def graph_view(self) -> GraphView:
        snapshot = self.registry.snapshot()
        return self.layout_engine.build_view(
            snapshot, self.tracker.compute_propagation_depth(snapshot.nodes),
        )

    def focus(self, node_id: str) -> list[MonitorableNode]:
        path = self.queries.path_to_root(node_id)
        if path and self.settings.DEBUG_MODE:
            logger.info(
                "service.focus",
                node_id=node_id,
                path=[node.selector for node in path],
            )
        return path

    def statistics(self) -> dict[str, int]:
        return {
            "total_nodes": self.queries.count(),
            "lazy_nodes": self.queries.lazy_count(),
            "active_nodes": self.queries.active_count(),
            "modified_nodes": self.queries.modified_count(),
            "total_events": len(self.monitor.events()),
            "total_cycles": len(self.monitor.cycles()),
        }

    def export_data(self) -> str:
        """JSON document of config, tree, recent events and statistics."""
        snapshot = self.registry.snapshot()
        data = {
            "timestamp": utcnow().isoformat(),
            "config": self.settings.model_dump(mode="json"),
            "tree": [root.model_dump(mode="json") for root in snapshot.root_nodes],
            "events": [event.model_dump(mode="json") for event in self.monitor.recent_events()],
            "propagation": self.tracker.compute_propagation_depth(snapshot.nodes),
            "statistics": self.statistics(),
        }
        return json.dumps(data, indent=2)
