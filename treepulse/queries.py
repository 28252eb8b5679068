"""
TreePulse — Tree Query Facade

Read-only lookups over the registry. Every call works on a fresh snapshot,
so results are value copies that callers may keep or modify freely.
Unknown ids give None or an empty list.
"""
from typing import Iterable, Optional, Union

from .models import FilterMode, MonitorableNode
from .registry import NodeRegistry


class TreeQueryFacade:
    def __init__(self, registry: NodeRegistry):
        self._registry = registry

    def _nodes(self) -> list[MonitorableNode]:
        return self._registry.snapshot().nodes

    def find_by_id(self, node_id: str) -> Optional[MonitorableNode]:
        return self._registry.get(node_id)

    def find_by_selector(self, selector: str) -> list[MonitorableNode]:
        return [node for node in self._nodes() if node.selector == selector]

    def find_by_name_prefix(self, prefix: str) -> list[MonitorableNode]:
        return [node for node in self._nodes() if node.name.startswith(prefix)]

    def path_to_root(self, node_id: str) -> list[MonitorableNode]:
        """Ancestor chain of `node_id`, root first and the node itself last."""
        by_id = {node.id: node for node in self._nodes()}
        path: list[MonitorableNode] = []
        current = by_id.get(node_id)
        while current is not None and len(path) <= len(by_id):
            path.append(current)
            current = by_id.get(current.parent_id) if current.parent_id else None
        path.reverse()
        return path

    # ─── Counts ────────────────────────────────────────────────

    def count(self) -> int:
        return self._registry.node_count

    def lazy_count(self) -> int:
        return self._registry.lazy_count

    def active_count(self) -> int:
        return sum(1 for node in self._nodes() if node.is_active)

    def modified_count(self) -> int:
        return sum(1 for node in self._nodes() if node.activation_count > 0)

    # ─── Filtering ─────────────────────────────────────────────

    def filter_nodes(
        self,
        mode: Union[FilterMode, str] = FilterMode.ALL,
        exclude: Iterable[str] = (),
        show_only_changes: bool = False,
    ) -> list[MonitorableNode]:
        """
        Nodes passing the display filter.

        `exclude` matches selectors or names. `show_only_changes` keeps
        nodes that are active or have been activated at least once.
        """
        mode = FilterMode(mode)
        excluded = set(exclude)
        result = []
        for node in self._nodes():
            if node.selector in excluded or node.name in excluded:
                continue
            if show_only_changes and not (node.is_active or node.activation_count > 0):
                continue
            if mode == FilterMode.ACTIVE_ONLY and not node.is_active:
                continue
            if mode == FilterMode.LAZY_ONLY and not node.is_lazy:
                continue
            if mode == FilterMode.MODIFIED_ONLY and node.activation_count == 0:
                continue
            result.append(node)
        return result
