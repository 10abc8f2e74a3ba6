"""In-memory NetworkX based storage for diagram graphs."""
from __future__ import annotations

import copy
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

import networkx as nx

from fluxgraph.config import get_bool_env
from fluxgraph.obs.events import EventBus, GraphEvent

from .model import (
    Bounds,
    EdgeSpec,
    Layer,
    NodeSpec,
    Position,
    coerce_edge_payload,
    coerce_layer_payload,
    coerce_node_payload,
)
from .query import QueryService

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


class GraphIntegrityError(ValueError):
    """Raised by strict loads when a document breaks the graph invariants.

    ``dropped_edges`` lists edges that reference missing nodes or ports and
    ``dropped_nodes`` lists nodes whose port ids are already owned elsewhere.
    """

    def __init__(self, dropped_edges: Iterable[str] = (), dropped_nodes: Iterable[str] = ()) -> None:
        self.dropped_edges = list(dropped_edges)
        self.dropped_nodes = list(dropped_nodes)
        problems = []
        if self.dropped_nodes:
            problems.append(
                f"{len(self.dropped_nodes)} node(s) reuse port ids owned by other nodes: "
                + ", ".join(self.dropped_nodes)
            )
        if self.dropped_edges:
            problems.append(
                f"{len(self.dropped_edges)} edge(s) reference missing nodes or ports: "
                + ", ".join(self.dropped_edges)
            )
        super().__init__("; ".join(problems))


class PortConflictError(ValueError):
    """Raised when a node carries a port id that is already owned by another node."""

    def __init__(self, node_id: str, port_ids: Iterable[str]) -> None:
        self.node_id = node_id
        self.port_ids = list(port_ids)
        super().__init__(f"Node {node_id} reuses port id(s) {', '.join(self.port_ids)}")


@dataclass
class LoadReport:
    """Outcome of :meth:`GraphStore.from_json`."""

    dropped_edges: List[str] = field(default_factory=list)
    dropped_nodes: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.dropped_edges and not self.dropped_nodes


@dataclass(eq=False)
class GraphStore:
    """Diagram graph backed by :class:`networkx.MultiDiGraph`.

    Every node id maps to its :class:`NodeSpec` (stored under the ``spec``
    node attribute) and every edge is keyed by its own id, so parallel edges
    and self-loops coexist. Edge specs are additionally kept in insertion
    order for deterministic iteration and serialisation.

    The store guarantees that every edge points at a present node and at a
    port owned by that node. Mutations go through the store; events are only
    published once a mutation, including any cascade, has completed.
    """

    graph: nx.MultiDiGraph = field(default_factory=nx.MultiDiGraph)
    layers: List[Layer] = field(default_factory=lambda: [Layer.default()])
    metadata: Dict[str, Any] = field(default_factory=dict)
    event_bus: Optional[EventBus] = None
    load_report: LoadReport = field(default_factory=LoadReport)
    _edges: Dict[str, EdgeSpec] = field(default_factory=dict, init=False, repr=False)
    _port_owners: Dict[str, str] = field(default_factory=dict, init=False, repr=False)
    _edge_order: Dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _edge_counter: Iterator[int] = field(default_factory=itertools.count, init=False, repr=False)

    @property
    def query(self) -> QueryService:
        return QueryService(self)

    # -- node operations --------------------------------------------------

    def add_node(self, node: NodeSpec) -> None:
        """Add ``node`` to the underlying graph, replacing any node with its id.

        Port ids are unique across the graph. A node that repeats a port id,
        or carries one already owned by a different node, is rejected with
        :class:`PortConflictError` and the graph is left unchanged.
        """

        conflicts = self._port_conflicts(node)
        if conflicts:
            raise PortConflictError(node.id, conflicts)

        replaced = node.id in self.graph
        if replaced:
            self._release_ports(node.id)
        self.graph.add_node(node.id, spec=node)
        for port in node.ports:
            self._port_owners[port.id] = node.id
        if replaced:
            logger.debug("Replacing node %s", node.id)
            stale = [
                edge
                for edge in self.get_node_edges(node.id)
                if not self._endpoints_valid(edge)
            ]
            for edge in stale:
                self._detach_edge(edge)
            self._refresh_ports(node.id)
            for edge in stale:
                self._refresh_ports(edge.source_node_id)
                self._refresh_ports(edge.target_node_id)
                self._emit(GraphEvent.EDGE_DELETED, edge)
        self._emit(GraphEvent.NODE_ADDED, node)

    def get_node(self, node_id: str) -> Optional[NodeSpec]:
        """Return the node stored under ``node_id`` or ``None``."""

        if node_id not in self.graph:
            return None
        return self.graph.nodes[node_id]["spec"]

    def has_node(self, node_id: str) -> bool:
        return node_id in self.graph

    def get_node_count(self) -> int:
        return self.graph.number_of_nodes()

    def get_all_nodes(self) -> List[NodeSpec]:
        """Return every node in insertion order."""

        return [data["spec"] for _, data in self.graph.nodes(data=True)]

    def nodes(self) -> Iterable[str]:
        """Iterate over node identifiers."""

        return self.graph.nodes

    def remove_node(self, node_id: str) -> Optional[NodeSpec]:
        """Remove a node together with every edge incident to it.

        Incident edges are collected first and removed in the same step as the
        node, so no subscriber ever observes a dangling edge. Removing an
        absent node is a no-op that returns ``None``.
        """

        node = self.get_node(node_id)
        if node is None:
            return None

        incident = self.get_node_edges(node_id)
        for edge in incident:
            self._detach_edge(edge)
        self._release_ports(node_id)
        self.graph.remove_node(node_id)

        others = {
            edge.target_node_id if edge.source_node_id == node_id else edge.source_node_id
            for edge in incident
        }
        for other in others:
            self._refresh_ports(other)
        logger.debug("Removed node %s with %d incident edge(s)", node_id, len(incident))

        for edge in incident:
            self._emit(GraphEvent.EDGE_DELETED, edge)
        self._emit(GraphEvent.NODE_DELETED, node)
        return node

    def update_node(self, node_id: str, updates: Mapping[str, Any]) -> Optional[NodeSpec]:
        """Shallow merge ``updates`` into a node; ``None`` if it is absent."""

        node = self.get_node(node_id)
        if node is None:
            return None
        ignored = node.update(updates)
        if ignored:
            logger.warning("Ignored read-only or unknown node field(s) %s on %s", ignored, node_id)
        self._emit(GraphEvent.NODE_UPDATED, node)
        return node

    def move_node(self, node_id: str, position: Position | Mapping[str, float]) -> Optional[NodeSpec]:
        return self.update_node(node_id, {"position": position})

    def resize_node(self, node_id: str, size: Any) -> Optional[NodeSpec]:
        return self.update_node(node_id, {"size": size})

    # -- edge operations --------------------------------------------------

    def add_edge(self, edge: EdgeSpec) -> bool:
        """Add ``edge`` if both endpoints resolve to a node and one of its ports.

        Returns ``False`` and leaves the graph untouched otherwise. An edge
        reusing an existing edge id replaces that edge and publishes
        ``edge:deleted`` for the old edge before ``edge:added``.
        """

        if not self._endpoints_valid(edge):
            logger.debug(
                "Rejected edge %s: %s/%s -> %s/%s does not resolve",
                edge.id,
                edge.source_node_id,
                edge.source_port_id,
                edge.target_node_id,
                edge.target_port_id,
            )
            return False

        previous = self._edges.get(edge.id)
        if previous is not None:
            self._detach_edge(previous)
            self._refresh_ports(previous.source_node_id)
            self._refresh_ports(previous.target_node_id)

        self._edges[edge.id] = edge
        self._edge_order[edge.id] = next(self._edge_counter)
        self.graph.add_edge(
            edge.source_node_id,
            edge.target_node_id,
            key=edge.id,
            type=edge.type.value,
        )
        self.get_node(edge.source_node_id).get_port(edge.source_port_id).connected = True
        self.get_node(edge.target_node_id).get_port(edge.target_port_id).connected = True
        if previous is not None:
            self._emit(GraphEvent.EDGE_DELETED, previous)
        self._emit(GraphEvent.EDGE_ADDED, edge)
        return True

    def remove_edge(self, edge_id: str) -> Optional[EdgeSpec]:
        """Remove an edge; removing an absent edge is a no-op returning ``None``."""

        edge = self._edges.get(edge_id)
        if edge is None:
            return None
        self._detach_edge(edge)
        self._refresh_ports(edge.source_node_id)
        self._refresh_ports(edge.target_node_id)
        self._emit(GraphEvent.EDGE_DELETED, edge)
        return edge

    def get_edge(self, edge_id: str) -> Optional[EdgeSpec]:
        return self._edges.get(edge_id)

    def has_edge(self, edge_id: str) -> bool:
        return edge_id in self._edges

    def get_edge_count(self) -> int:
        return len(self._edges)

    def get_all_edges(self) -> List[EdgeSpec]:
        """Return every edge in insertion order."""

        return list(self._edges.values())

    def edges(self) -> Iterable[tuple[str, str, dict]]:
        """Iterate over ``(source, target, data)`` tuples of the topology."""

        for source, target, key, data in self.graph.edges(keys=True, data=True):
            yield source, target, {"id": key, **data}

    def update_edge(self, edge_id: str, updates: Mapping[str, Any]) -> Optional[EdgeSpec]:
        """Shallow merge ``updates`` into an edge; endpoints cannot change."""

        edge = self._edges.get(edge_id)
        if edge is None:
            return None
        ignored = edge.update(updates)
        if ignored:
            logger.warning("Ignored read-only or unknown edge field(s) %s on %s", ignored, edge_id)
        self.graph.edges[edge.source_node_id, edge.target_node_id, edge.id]["type"] = edge.type.value
        self._emit(GraphEvent.EDGE_UPDATED, edge)
        return edge

    # -- relationship queries ---------------------------------------------

    def get_node_edges(self, node_id: str) -> List[EdgeSpec]:
        """Return the edges touching ``node_id`` in insertion order."""

        if node_id not in self.graph:
            return []
        # Only the node's own adjacency is read; self-loops appear on both sides.
        keys = dict.fromkeys(key for _, _, key in self.graph.out_edges(node_id, keys=True))
        keys.update(dict.fromkeys(key for _, _, key in self.graph.in_edges(node_id, keys=True)))
        return sorted((self._edges[key] for key in keys), key=lambda edge: self._edge_order[edge.id])

    def get_outgoing_edges(self, node_id: str) -> List[EdgeSpec]:
        return [edge for edge in self.get_node_edges(node_id) if edge.source_node_id == node_id]

    def get_incoming_edges(self, node_id: str) -> List[EdgeSpec]:
        return [edge for edge in self.get_node_edges(node_id) if edge.target_node_id == node_id]

    def get_successors(self, node_id: str) -> List[NodeSpec]:
        if node_id not in self.graph:
            return []
        return [self.get_node(other) for other in self.graph.successors(node_id)]

    def get_predecessors(self, node_id: str) -> List[NodeSpec]:
        if node_id not in self.graph:
            return []
        return [self.get_node(other) for other in self.graph.predecessors(node_id)]

    def get_connected_nodes(self, node_id: str) -> List[NodeSpec]:
        """Return neighbours reached by an edge in either direction."""

        if node_id not in self.graph:
            return []
        neighbours = dict.fromkeys(self.graph.successors(node_id))
        neighbours.update(dict.fromkeys(self.graph.predecessors(node_id)))
        return [self.get_node(other) for other in neighbours]

    def find_edge_between(self, source_id: str, target_id: str) -> Optional[EdgeSpec]:
        """Return the first edge from ``source_id`` to ``target_id``."""

        data = self.graph.get_edge_data(source_id, target_id)
        if not data:
            return None
        return self._edges[next(iter(data))]

    # -- analysis ---------------------------------------------------------

    def get_root_nodes(self) -> List[NodeSpec]:
        return self.query.root_nodes()

    def get_leaf_nodes(self) -> List[NodeSpec]:
        return self.query.leaf_nodes()

    def has_cycle(self) -> bool:
        return self.query.has_cycle()

    def topological_sort(self) -> Optional[List[NodeSpec]]:
        return self.query.topological_sort()

    def is_connected(self) -> bool:
        return self.query.is_connected()

    def get_bounds(self) -> Optional[Bounds]:
        return self.query.bounds()

    def get_nodes_in_bounds(self, bounds: Bounds) -> List[NodeSpec]:
        return self.query.nodes_in_bounds(bounds)

    def get_node_at_position(self, point: Position | Mapping[str, float]) -> Optional[NodeSpec]:
        return self.query.node_at_position(Position.coerce(point))

    # -- serialisation ----------------------------------------------------

    def to_json(self) -> dict[str, Any]:
        """Return a complete, detached representation of the graph."""

        return {
            "version": FORMAT_VERSION,
            "nodes": [node.to_payload() for node in self.get_all_nodes()],
            "edges": [edge.to_payload() for edge in self._edges.values()],
            "layers": [layer.to_payload() for layer in self.layers],
            "metadata": copy.deepcopy(self.metadata),
        }

    @classmethod
    def from_json(
        cls,
        data: Mapping[str, Any],
        *,
        strict: Optional[bool] = None,
        event_bus: Optional[EventBus] = None,
    ) -> "GraphStore":
        """Rebuild a graph from :meth:`to_json` output.

        Nodes keep their ids and serialised port lists. Edges go through the
        same endpoint validation as :meth:`add_edge`; the ones that fail are
        dropped, logged and listed in ``load_report.dropped_edges``. A node
        whose port ids are already owned by an earlier node is skipped and
        listed in ``load_report.dropped_nodes``, so its edges drop too. With
        ``strict`` (defaulting to ``FLUXGRAPH_STRICT_LOAD``) a
        :class:`GraphIntegrityError` is raised instead.
        """

        if strict is None:
            strict = get_bool_env("FLUXGRAPH_STRICT_LOAD", default=False)

        store = cls(metadata=copy.deepcopy(dict(data.get("metadata") or {})))
        if "layers" in data:
            store.layers = [coerce_layer_payload(item) for item in data["layers"] or []]

        dropped_nodes: list[str] = []
        for payload in data.get("nodes") or []:
            node = coerce_node_payload(payload)
            try:
                store.add_node(node)
            except PortConflictError as exc:
                logger.debug("Skipping node %s: %s", node.id, exc)
                dropped_nodes.append(node.id)

        dropped: list[str] = []
        for payload in data.get("edges") or []:
            edge = coerce_edge_payload(payload)
            if not store.add_edge(edge):
                dropped.append(edge.id)
                # Serialised port flags may still claim the dropped connection.
                store._refresh_ports(edge.source_node_id)
                store._refresh_ports(edge.target_node_id)

        if dropped or dropped_nodes:
            if strict:
                raise GraphIntegrityError(dropped, dropped_nodes)
            if dropped_nodes:
                logger.warning(
                    "Dropped %d node(s) with conflicting port ids while loading: %s",
                    len(dropped_nodes),
                    dropped_nodes,
                )
            if dropped:
                logger.warning(
                    "Dropped %d edge(s) with missing endpoints while loading: %s",
                    len(dropped),
                    dropped,
                )
        store.load_report = LoadReport(dropped_edges=dropped, dropped_nodes=dropped_nodes)

        store.event_bus = event_bus
        store._emit(GraphEvent.GRAPH_LOADED, store.load_report)
        return store

    def clone(self) -> "GraphStore":
        """Return an independent deep copy with identical ids."""

        return type(self).from_json(self.to_json(), strict=True)

    def clear(self) -> None:
        """Remove every node and edge; layers and metadata are kept."""

        self.graph.clear()
        self._edges.clear()
        self._edge_order.clear()
        self._port_owners.clear()
        self._emit(GraphEvent.GRAPH_CLEARED)

    # -- internal helpers -------------------------------------------------

    def _endpoints_valid(self, edge: EdgeSpec) -> bool:
        source = self.get_node(edge.source_node_id)
        target = self.get_node(edge.target_node_id)
        if source is None or target is None:
            return False
        return source.has_port(edge.source_port_id) and target.has_port(edge.target_port_id)

    def _detach_edge(self, edge: EdgeSpec) -> None:
        del self._edges[edge.id]
        del self._edge_order[edge.id]
        self.graph.remove_edge(edge.source_node_id, edge.target_node_id, key=edge.id)

    def _port_conflicts(self, node: NodeSpec) -> List[str]:
        """Return port ids on ``node`` that are repeated or owned by another node."""

        seen: set[str] = set()
        conflicts: List[str] = []
        for port in node.ports:
            owner = self._port_owners.get(port.id)
            if port.id in seen or (owner is not None and owner != node.id):
                conflicts.append(port.id)
            seen.add(port.id)
        return conflicts

    def _release_ports(self, node_id: str) -> None:
        for port in self.get_node(node_id).ports:
            if self._port_owners.get(port.id) == node_id:
                del self._port_owners[port.id]

    def _refresh_ports(self, node_id: str) -> None:
        """Recompute the ``connected`` flag of every port on ``node_id``."""

        node = self.get_node(node_id)
        if node is None:
            return
        used: set[str] = set()
        for edge in self.get_node_edges(node_id):
            if edge.source_node_id == node_id:
                used.add(edge.source_port_id)
            if edge.target_node_id == node_id:
                used.add(edge.target_port_id)
        for port in node.ports:
            port.connected = port.id in used

    def _emit(self, event_type: GraphEvent, payload: Any = None) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(event_type, payload)


Graph = GraphStore

__all__ = [
    "FORMAT_VERSION",
    "Graph",
    "GraphIntegrityError",
    "GraphStore",
    "LoadReport",
    "PortConflictError",
]
