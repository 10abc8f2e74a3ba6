"""Query and analysis helpers for the diagram graph."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

import networkx as nx

from .geometry import bounds_intersect, contains_point, node_bounds
from .model import Bounds, NodeSpec, NodeType, Position

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from .store import GraphStore

# Traversal colours for cycle detection. Unvisited nodes are simply absent.
_ACTIVE = 1
_FINISHED = 2


@dataclass
class QueryService:
    """Provide structural queries on top of a :class:`GraphStore`.

    Every query is read-only and runs in time linear in the number of nodes
    and edges it inspects.
    """

    store: "GraphStore"

    @property
    def graph(self) -> nx.MultiDiGraph:
        return self.store.graph

    def by_type(self, node_type: NodeType | str, **filters: Any) -> Iterable[NodeSpec]:
        """Yield nodes of ``node_type`` whose ``data`` matches ``filters``."""

        wanted = NodeType(node_type)
        for node in self.store.get_all_nodes():
            if node.type is not wanted:
                continue
            if all(node.data.get(key) == value for key, value in filters.items()):
                yield node

    def neighbors(
        self, node_id: str, *, hop: int = 1, edge_types: Optional[Iterable[str]] = None
    ) -> Iterable[NodeSpec]:
        """Yield nodes downstream of ``node_id`` up to ``hop`` steps."""

        if node_id not in self.graph:
            return
        allowed = {str(getattr(item, "value", item)) for item in edge_types} if edge_types else None
        visited = {node_id}
        frontier = [node_id]
        for _ in range(hop):
            next_frontier = []
            for current in frontier:
                for _, neighbor, edge_data in self.graph.out_edges(current, data=True):
                    if allowed is not None and edge_data.get("type") not in allowed:
                        continue
                    if neighbor in visited:
                        continue
                    visited.add(neighbor)
                    next_frontier.append(neighbor)
                    yield self.store.get_node(neighbor)
            frontier = next_frontier

    def root_nodes(self) -> List[NodeSpec]:
        """Return nodes without incoming edges, in node order.

        A graph without edges returns every node; a graph where every node has
        an incoming edge returns an empty list.
        """

        return [
            data["spec"]
            for node_id, data in self.graph.nodes(data=True)
            if self.graph.in_degree(node_id) == 0
        ]

    def leaf_nodes(self) -> List[NodeSpec]:
        return [
            data["spec"]
            for node_id, data in self.graph.nodes(data=True)
            if self.graph.out_degree(node_id) == 0
        ]

    def has_cycle(self) -> bool:
        """Return ``True`` if any directed cycle exists, self-loops included.

        Iterative depth-first search that colours nodes active while they are
        on the current path and finished once every successor is explored.
        Reaching an active node closes a cycle. Every node is tried as a root
        so disconnected components are covered.
        """

        state: Dict[str, int] = {}
        for root in self.graph.nodes:
            if root in state:
                continue
            state[root] = _ACTIVE
            stack = [(root, iter(self.graph.successors(root)))]
            while stack:
                current, successors = stack[-1]
                for successor in successors:
                    colour = state.get(successor)
                    if colour == _ACTIVE:
                        return True
                    if colour is None:
                        state[successor] = _ACTIVE
                        stack.append((successor, iter(self.graph.successors(successor))))
                        break
                else:
                    state[current] = _FINISHED
                    stack.pop()
        return False

    def topological_sort(self) -> Optional[List[NodeSpec]]:
        """Return nodes so that every edge points forward, or ``None`` if cyclic."""

        if self.has_cycle():
            return None
        return [self.store.get_node(node_id) for node_id in nx.topological_sort(self.graph)]

    def is_connected(self) -> bool:
        """Return ``True`` when the graph is weakly connected.

        An empty graph counts as connected.
        """

        if self.graph.number_of_nodes() == 0:
            return True
        return nx.is_weakly_connected(self.graph)

    def bounds(self) -> Optional[Bounds]:
        """Return the smallest rectangle covering every node, ``None`` if empty."""

        nodes = self.store.get_all_nodes()
        if not nodes:
            return None

        extents = [node_bounds(node) for node in nodes]
        min_x = min(item.x for item in extents)
        min_y = min(item.y for item in extents)
        max_x = max(item.right for item in extents)
        max_y = max(item.bottom for item in extents)
        return Bounds(x=min_x, y=min_y, width=max_x - min_x, height=max_y - min_y)

    def nodes_in_bounds(self, bounds: Bounds) -> List[NodeSpec]:
        """Return nodes whose rectangle overlaps ``bounds``."""

        return [node for node in self.store.get_all_nodes() if bounds_intersect(node_bounds(node), bounds)]

    def node_at_position(self, point: Position) -> Optional[NodeSpec]:
        """Return the topmost node under ``point``; higher ``zIndex`` wins."""

        ordered = sorted(
            self.store.get_all_nodes(),
            key=lambda node: node.metadata.get("zIndex", 0),
            reverse=True,
        )
        for node in ordered:
            if contains_point(node_bounds(node), point):
                return node
        return None


__all__ = ["QueryService"]
