"""
TreePulse — Graph Layout Engine

Layered top-down layout:
  1. parent → children adjacency from the edge list (input order)
  2. roots = nodes with no incoming edge; with no roots at all, only the
     first node is placed, at the fallback coordinate
  3. breadth-first level assignment from all roots at once, first
     discovery wins
  4. each level is spaced evenly and centered on the origin x;
     y = origin_y + level * level_height

Pure in (nodes, edges, settings): identical input gives identical output.
A node that cannot be placed is left out of the result, never put at the
origin.
"""
from collections import deque
from typing import Any, Iterable, Optional, Sequence

from .config import Settings, get_settings
from .models import GraphView, GraphViewEdge, GraphViewNode, Position, TreeSnapshot
from .propagation import compute_propagation_depth


def _node_id(node: Any) -> str:
    return node if isinstance(node, str) else node.id


def _edge_ends(edge: Any) -> tuple[str, str]:
    if isinstance(edge, GraphViewEdge):
        return edge.source_id, edge.target_id
    source_id, target_id = edge
    return source_id, target_id


class GraphLayoutEngine:
    """Computes node positions for the tree graph view."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.node_spacing = settings.LAYOUT_NODE_SPACING
        self.level_height = settings.LAYOUT_LEVEL_HEIGHT
        self.origin_x = settings.LAYOUT_ORIGIN_X
        self.origin_y = settings.LAYOUT_ORIGIN_Y
        self.fallback = Position(x=settings.LAYOUT_FALLBACK_X, y=settings.LAYOUT_FALLBACK_Y)

    def layout(self, nodes: Sequence[Any], edges: Iterable[Any]) -> dict[str, Position]:
        """
        Position every node reachable from a root.

        `nodes` holds ids or objects with an `id`; `edges` holds
        GraphViewEdge objects or (source_id, target_id) pairs.
        """
        node_ids = list(dict.fromkeys(_node_id(node) for node in nodes))
        if not node_ids:
            return {}
        known = set(node_ids)

        children: dict[str, list[str]] = {}
        has_parent: set[str] = set()
        for edge in edges:
            source_id, target_id = _edge_ends(edge)
            if target_id not in known:
                continue
            children.setdefault(source_id, []).append(target_id)
            has_parent.add(target_id)

        roots = [node_id for node_id in node_ids if node_id not in has_parent]
        if not roots:
            return {node_ids[0]: self.fallback}

        levels = self._assign_levels(roots, children)

        positions: dict[str, Position] = {}
        for level, level_ids in enumerate(levels):
            y = self.origin_y + level * self.level_height
            total_width = (len(level_ids) - 1) * self.node_spacing
            start_x = self.origin_x - total_width / 2
            for index, node_id in enumerate(level_ids):
                positions[node_id] = Position(x=start_x + index * self.node_spacing, y=y)
        return positions

    @staticmethod
    def _assign_levels(roots: list[str], children: dict[str, list[str]]) -> list[list[str]]:
        levels: list[list[str]] = []
        visited: set[str] = set()
        queue: deque[tuple[str, int]] = deque((root_id, 0) for root_id in roots)

        while queue:
            node_id, level = queue.popleft()
            if node_id in visited:
                continue
            visited.add(node_id)

            while len(levels) <= level:
                levels.append([])
            levels[level].append(node_id)

            for child_id in children.get(node_id, ()):
                if child_id not in visited:
                    queue.append((child_id, level + 1))

        return levels

    def build_view(
        self,
        snapshot: TreeSnapshot,
        depths: Optional[dict[str, int]] = None,
    ) -> GraphView:
        """Graph view of a tree snapshot; an empty tree gives an empty view."""
        nodes = snapshot.nodes
        if depths is None:
            depths = compute_propagation_depth(nodes)

        edges = [
            GraphViewEdge(
                source_id=node.parent_id,
                target_id=node.id,
                is_propagation_path=node.propagated_from == node.parent_id,
            )
            for node in nodes
            if node.parent_id is not None
        ]
        positions = self.layout(nodes, edges)

        view_nodes = []
        for node in nodes:
            position = positions.get(node.id)
            if position is None:
                continue
            view_nodes.append(GraphViewNode(
                id=node.id,
                name=node.name,
                x=position.x,
                y=position.y,
                is_trigger_source=node.trigger_source is not None and node.propagated_from is None,
                propagation_depth=depths.get(node.id, 0),
                is_active=node.is_active,
                activation_count=node.activation_count,
            ))

        view_edges = [
            edge for edge in edges
            if edge.source_id in positions and edge.target_id in positions
        ]
        return GraphView(nodes=view_nodes, edges=view_edges)
