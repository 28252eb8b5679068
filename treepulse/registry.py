"""
TreePulse — Node Registry

Owns the flat node list, the root subset and the id index. Every node
mutation in the package goes through here.

Re-scan contract:
  - structure (parent, children, depth, name, selector, strategy) always
    comes from the latest host report
  - activity (counts, active flag, timestamps, trigger, propagation link)
    is carried forward for ids seen in the previous scan
  - a failing or malformed host report yields an empty tree, never a
    partial or stale one, and never an exception
"""
import itertools
from datetime import datetime
from typing import Any, Callable, Optional

from pydantic import ValidationError

from .errors import HostAdapterError
from .host import HostNodeRef, RootSupplier, display_name, display_selector, fetch_roots
from .log import get_logger
from .metrics import scans_total, track_scan, tree_nodes
from .models import (
    MonitorableNode, TreeSnapshot, TriggerSource, UpdateStrategy, utcnow,
)

logger = get_logger()

Subscriber = Callable[[str], None]


class NodeRegistry:
    """Flat node store with identity-preserving re-synchronization."""

    def __init__(
        self,
        adapter: Optional[RootSupplier] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._adapter = adapter
        self._clock = clock
        self._nodes: list[MonitorableNode] = []
        self._roots: list[MonitorableNode] = []
        self._index: dict[str, MonitorableNode] = {}
        self._is_scanning = False
        self._id_counter = itertools.count(1)
        self._subscribers: list[Subscriber] = []

    # ─── Scanning ──────────────────────────────────────────────

    @property
    def is_scanning(self) -> bool:
        return self._is_scanning

    def scan(self, root_refs: Optional[Any] = None) -> None:
        """
        Rebuild the tree from `root_refs`, or from the adapter when omitted.
        A scan requested while another is running is dropped.
        """
        if self._is_scanning:
            logger.debug("registry.scan_skipped", reason="scan_in_progress")
            return

        self._is_scanning = True
        try:
            self._rebuild(root_refs)
        finally:
            self._is_scanning = False
        self._notify("scan")

    @track_scan
    def _rebuild(self, root_refs: Optional[Any]) -> None:
        try:
            refs = fetch_roots(self._adapter) if root_refs is None else root_refs
            roots, nodes = self._build(refs)
        except Exception as e:
            logger.warning(
                "registry.scan_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            scans_total.labels(outcome="failed").inc()
            roots, nodes = [], []
        else:
            scans_total.labels(outcome="ok").inc()

        # Structure is final before any previous state is read.
        previous = self._index
        for node in nodes:
            old = previous.get(node.id)
            if old is not None:
                node.activation_count = old.activation_count
                node.is_active = old.is_active
                node.last_activation_time = old.last_activation_time
                node.trigger_source = old.trigger_source
                node.propagated_from = old.propagated_from

        self._roots = roots
        self._nodes = nodes
        self._index = {node.id: node for node in nodes}
        self._update_gauges()

        logger.debug(
            "registry.scanned",
            nodes=len(nodes),
            roots=len(roots),
            carried_over=sum(1 for n in nodes if n.id in previous),
        )

    def _build(self, refs: Any) -> tuple[list[MonitorableNode], list[MonitorableNode]]:
        """Pre-order build of the new tree; raises HostAdapterError on bad input."""
        if not isinstance(refs, (list, tuple)):
            raise HostAdapterError(
                f"root list must be a list, got {type(refs).__name__}"
            )

        roots: list[MonitorableNode] = []
        nodes: list[MonitorableNode] = []
        seen_ids: set[str] = set()
        seen_refs: dict[int, Any] = {}  # keeps refs alive so ids stay unique

        stack: list[tuple[Any, Optional[MonitorableNode]]] = [
            (raw, None) for raw in reversed(refs)
        ]
        while stack:
            raw, parent = stack.pop()
            if id(raw) in seen_refs:
                raise HostAdapterError("host reference reachable more than once")
            seen_refs[id(raw)] = raw

            ref = self._coerce(raw)
            node = MonitorableNode(
                id=ref.id or self._generate_id(),
                name=display_name(ref),
                selector=display_selector(ref),
                update_strategy=ref.update_strategy or UpdateStrategy.EAGER,
                parent_id=parent.id if parent else None,
                depth=parent.depth + 1 if parent else 0,
            )
            if node.id in seen_ids:
                raise HostAdapterError(f"duplicate node id '{node.id}'")
            seen_ids.add(node.id)

            nodes.append(node)
            if parent is None:
                roots.append(node)
            else:
                parent.children.append(node)

            stack.extend((child, node) for child in reversed(ref.children))

        return roots, nodes

    @staticmethod
    def _coerce(raw: Any) -> HostNodeRef:
        if isinstance(raw, HostNodeRef):
            return raw
        try:
            return HostNodeRef.model_validate(raw, from_attributes=True)
        except ValidationError as e:
            raise HostAdapterError(f"malformed host reference: {e}") from e

    def _generate_id(self) -> str:
        return f"node_{next(self._id_counter)}"

    # ─── Mutation ──────────────────────────────────────────────

    def mark_active(self, node_id: str, active: bool) -> bool:
        node = self._index.get(node_id)
        if node is None:
            return False
        if active and not node.is_active:
            node.last_activation_time = self._clock()
        node.is_active = active
        self._notify("activity")
        return True

    def increment_activation(
        self,
        node_id: str,
        trigger: Optional[TriggerSource] = None,
        propagated_from: Optional[str] = None,
    ) -> bool:
        """Count one activation. Trigger and origin are only ever set, never cleared."""
        node = self._index.get(node_id)
        if node is None:
            return False
        node.activation_count += 1
        node.is_active = True
        node.last_activation_time = self._clock()
        if trigger is not None:
            node.trigger_source = trigger
        if propagated_from is not None:
            node.propagated_from = propagated_from
        self._notify("activity")
        return True

    def begin_propagation(self, node_id: str, trigger: TriggerSource) -> bool:
        """Count one activation and make the node a propagation origin."""
        node = self._index.get(node_id)
        if node is None:
            return False
        node.propagated_from = None
        return self.increment_activation(node_id, trigger=trigger)

    def reset_activity(self) -> None:
        for node in self._nodes:
            node.is_active = False
        self._notify("reset")

    def clear_counters(self) -> None:
        """Explicit history clear: the only path that zeroes activation counts."""
        for node in self._nodes:
            node.activation_count = 0
            node.is_active = False
            node.last_activation_time = None
            node.trigger_source = None
            node.propagated_from = None
        self._notify("clear")

    # ─── Reads ─────────────────────────────────────────────────

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._index

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def lazy_count(self) -> int:
        return sum(1 for node in self._nodes if node.is_lazy)

    def get(self, node_id: str) -> Optional[MonitorableNode]:
        """Value copy of one node with its whole subtree."""
        node = self._index.get(node_id)
        if node is None:
            return None
        root = node.model_copy(update={"children": []})
        stack = [(root, node)]
        while stack:
            copy, original = stack.pop()
            for child in original.children:
                child_copy = child.model_copy(update={"children": []})
                copy.children.append(child_copy)
                stack.append((child_copy, child))
        return root

    def nodes(self) -> list[MonitorableNode]:
        return self.snapshot().nodes

    def roots(self) -> list[MonitorableNode]:
        return self.snapshot().root_nodes

    def child_ids(self, node_id: str) -> list[str]:
        node = self._index.get(node_id)
        if node is None:
            return []
        return [child.id for child in node.children]

    def snapshot(self) -> TreeSnapshot:
        """Value copy of the tree; later mutation does not show through."""
        copies: dict[str, MonitorableNode] = {}
        for node in self._nodes:
            # pre-order: a parent is always copied before its children
            copy = node.model_copy(update={"children": []})
            copies[node.id] = copy
            if node.parent_id is not None:
                copies[node.parent_id].children.append(copy)

        return TreeSnapshot(
            timestamp=self._clock(),
            nodes=list(copies.values()),
            root_nodes=[copies[root.id] for root in self._roots],
        )

    # ─── Change notification ───────────────────────────────────

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a change callback; returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, reason: str) -> None:
        for callback in list(self._subscribers):
            try:
                callback(reason)
            except Exception as e:
                logger.warning(
                    "registry.subscriber_failed",
                    reason=reason,
                    error=str(e),
                )

    def _update_gauges(self) -> None:
        lazy = self.lazy_count
        tree_nodes.labels(update_strategy=UpdateStrategy.LAZY.value).set(lazy)
        tree_nodes.labels(update_strategy=UpdateStrategy.EAGER.value).set(len(self._nodes) - lazy)
