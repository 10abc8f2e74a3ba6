"""Typed entities, defaults and factories for the diagram graph."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .ids import new_id, now_ms


class NodeType(str, Enum):
    """Closed set of shape kinds understood by the editor."""

    RECTANGLE = "rectangle"
    DIAMOND = "diamond"
    OVAL = "oval"
    PARALLELOGRAM = "parallelogram"
    CYLINDER = "cylinder"
    DOCUMENT = "document"
    HEXAGON = "hexagon"
    TRIANGLE = "triangle"
    MANUAL_INPUT = "manual-input"
    DELAY = "delay"
    DISPLAY = "display"
    CONNECTOR = "connector"
    OFF_PAGE_CONNECTOR = "off-page-connector"
    NOTE = "note"
    GROUP = "group"


class PortPosition(str, Enum):
    """Side of a node a port is attached to."""

    TOP = "top"
    RIGHT = "right"
    BOTTOM = "bottom"
    LEFT = "left"


class EdgeType(str, Enum):
    """Routing style of an edge. Stored, never interpreted here."""

    BEZIER = "bezier"
    ORTHOGONAL = "orthogonal"
    STRAIGHT = "straight"
    STEP = "step"


class ArrowType(str, Enum):
    NONE = "none"
    ARROW = "arrow"
    DIAMOND = "diamond"
    CIRCLE = "circle"


class InvalidShapeType(ValueError):
    """Raised when a node is built from a type outside :class:`NodeType`."""

    def __init__(self, shape_type: Any) -> None:
        super().__init__(f"Unrecognized shape type: {shape_type!r}")
        self.shape_type = shape_type


@dataclass
class Position:
    x: float = 0
    y: float = 0

    @classmethod
    def coerce(cls, value: Any) -> "Position":
        """Build a :class:`Position` from a position, mapping or ``(x, y)`` pair."""

        if isinstance(value, Position):
            return cls(value.x, value.y)
        if isinstance(value, Mapping):
            return cls(x=value.get("x", 0), y=value.get("y", 0))
        if isinstance(value, Sequence) and not isinstance(value, str) and len(value) == 2:
            return cls(x=value[0], y=value[1])
        raise ValueError(f"Cannot interpret {value!r} as a position")

    def to_payload(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y}


@dataclass
class Size:
    width: float = 0
    height: float = 0

    @classmethod
    def coerce(cls, value: Any) -> "Size":
        """Build a :class:`Size` from a size, mapping or ``(width, height)`` pair."""

        if isinstance(value, Size):
            return cls(value.width, value.height)
        if isinstance(value, Mapping):
            return cls(width=value.get("width", 0), height=value.get("height", 0))
        if isinstance(value, Sequence) and not isinstance(value, str) and len(value) == 2:
            return cls(width=value[0], height=value[1])
        raise ValueError(f"Cannot interpret {value!r} as a size")

    def to_payload(self) -> dict[str, Any]:
        return {"width": self.width, "height": self.height}


@dataclass
class Bounds:
    """Axis aligned rectangle in document coordinates."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def to_payload(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass
class Port:
    """Attachment point on a node boundary."""

    id: str
    position: PortPosition
    offset: float = 0.5
    connected: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "position": self.position.value,
            "offset": self.offset,
            "connected": self.connected,
        }


@dataclass
class Endpoint:
    """One end of an edge: a node and one of its ports."""

    node_id: str
    port_id: str

    def to_payload(self) -> dict[str, Any]:
        return {"nodeId": self.node_id, "portId": self.port_id}


@dataclass
class Layer:
    """Document level layer that nodes may be assigned to."""

    id: str
    name: str
    visible: bool = True
    locked: bool = False

    @classmethod
    def default(cls) -> "Layer":
        return cls(id="default", name="Default Layer")

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "visible": self.visible, "locked": self.locked}


# Port layouts per shape, as (side, offset) pairs in port order.
_FOUR_SIDES = (
    (PortPosition.TOP, 0.5),
    (PortPosition.RIGHT, 0.5),
    (PortPosition.BOTTOM, 0.5),
    (PortPosition.LEFT, 0.5),
)
_FOUR_SIDES_VERTICAL_FIRST = (
    (PortPosition.TOP, 0.5),
    (PortPosition.BOTTOM, 0.5),
    (PortPosition.LEFT, 0.5),
    (PortPosition.RIGHT, 0.5),
)

DEFAULT_PORTS: Dict[NodeType, tuple[tuple[PortPosition, float], ...]] = {
    NodeType.RECTANGLE: _FOUR_SIDES,
    NodeType.DIAMOND: _FOUR_SIDES,
    NodeType.OVAL: _FOUR_SIDES,
    NodeType.PARALLELOGRAM: _FOUR_SIDES,
    NodeType.CYLINDER: _FOUR_SIDES_VERTICAL_FIRST,
    NodeType.DOCUMENT: _FOUR_SIDES_VERTICAL_FIRST,
    NodeType.HEXAGON: _FOUR_SIDES,
    NodeType.TRIANGLE: (
        (PortPosition.TOP, 0.5),
        (PortPosition.BOTTOM, 0.25),
        (PortPosition.BOTTOM, 0.75),
    ),
    NodeType.MANUAL_INPUT: _FOUR_SIDES,
    NodeType.DELAY: _FOUR_SIDES,
    NodeType.DISPLAY: _FOUR_SIDES,
    NodeType.CONNECTOR: _FOUR_SIDES,
    NodeType.OFF_PAGE_CONNECTOR: _FOUR_SIDES,
    NodeType.NOTE: _FOUR_SIDES,
    NodeType.GROUP: (),
}

DEFAULT_SIZES: Dict[NodeType, tuple[float, float]] = {
    NodeType.RECTANGLE: (160, 80),
    NodeType.DIAMOND: (120, 120),
    NodeType.OVAL: (140, 70),
    NodeType.PARALLELOGRAM: (160, 80),
    NodeType.CYLINDER: (100, 120),
    NodeType.DOCUMENT: (140, 100),
    NodeType.HEXAGON: (140, 80),
    NodeType.TRIANGLE: (120, 100),
    NodeType.MANUAL_INPUT: (140, 70),
    NodeType.DELAY: (120, 80),
    NodeType.DISPLAY: (140, 80),
    NodeType.CONNECTOR: (40, 40),
    NodeType.OFF_PAGE_CONNECTOR: (60, 60),
    NodeType.NOTE: (120, 80),
    NodeType.GROUP: (300, 200),
}


def default_node_style() -> dict[str, Any]:
    return {
        "backgroundColor": "#ffffff",
        "borderColor": "#6366f1",
        "borderWidth": 2,
        "borderRadius": 8,
        "textColor": "#1e1e2e",
        "fontSize": 14,
        "fontFamily": "Roboto, sans-serif",
        "fontWeight": "normal",
        "textAlign": "center",
        "opacity": 1,
        "shadow": True,
    }


def default_edge_style() -> dict[str, Any]:
    return {
        "strokeColor": "#6366f1",
        "strokeWidth": 2,
        "strokeDasharray": None,
        "animated": False,
        "opacity": 1,
    }


def default_node_metadata() -> dict[str, Any]:
    now = now_ms()
    return {"createdAt": now, "updatedAt": now, "locked": False, "visible": True, "zIndex": 0}


def default_edge_metadata() -> dict[str, Any]:
    now = now_ms()
    return {"createdAt": now, "updatedAt": now, "zIndex": 0}


@dataclass
class NodeSpec:
    """A shape placed on the canvas together with the ports it owns."""

    id: str
    type: NodeType
    position: Position
    size: Size
    ports: List[Port] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)
    style: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    parent_id: Optional[str] = None
    layer_id: Optional[str] = None

    def get_port(self, port_id: str) -> Optional[Port]:
        for port in self.ports:
            if port.id == port_id:
                return port
        return None

    def has_port(self, port_id: str) -> bool:
        return self.get_port(port_id) is not None

    def update(self, updates: Mapping[str, Any]) -> list[str]:
        """Shallow merge ``updates`` into the node.

        Each supplied field replaces the current value wholesale; ``position``
        for example is never merged per axis. ``metadata`` is the exception
        and is merged key by key so timestamps survive. ``id``, ``type`` and
        ``ports`` are left untouched. Returns the names of the fields that
        were ignored.

        Every value is coerced before any field is written, so an invalid
        value raises and leaves the node exactly as it was.
        """

        changes: dict[str, Any] = {}
        ignored: list[str] = []
        for key, value in updates.items():
            if key == "position":
                changes[key] = Position.coerce(value)
            elif key == "size":
                changes[key] = Size.coerce(value)
            elif key in ("data", "style"):
                changes[key] = copy.deepcopy(dict(value))
            elif key == "metadata":
                changes[key] = {**self.metadata, **value}
            elif key in ("parent_id", "layer_id"):
                changes[key] = value
            else:
                ignored.append(key)
        for key, value in changes.items():
            setattr(self, key, value)
        self.metadata["updatedAt"] = now_ms()
        return ignored

    def to_payload(self) -> dict[str, Any]:
        """Return the serialisable representation of the node."""

        payload = {
            "id": self.id,
            "type": self.type.value,
            "position": self.position.to_payload(),
            "size": self.size.to_payload(),
            "data": copy.deepcopy(self.data),
            "style": copy.deepcopy(self.style),
            "ports": [port.to_payload() for port in self.ports],
            "metadata": copy.deepcopy(self.metadata),
        }
        if self.parent_id is not None:
            payload["parentId"] = self.parent_id
        if self.layer_id is not None:
            payload["layerId"] = self.layer_id
        return payload


@dataclass
class EdgeSpec:
    """Directed connection from a port on one node to a port on another."""

    id: str
    source: Endpoint
    target: Endpoint
    type: EdgeType = EdgeType.BEZIER
    waypoints: List[Position] = field(default_factory=list)
    style: Dict[str, Any] = field(default_factory=dict)
    label: Optional[Dict[str, Any]] = None
    source_arrow: ArrowType = ArrowType.NONE
    target_arrow: ArrowType = ArrowType.ARROW
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def source_node_id(self) -> str:
        return self.source.node_id

    @property
    def source_port_id(self) -> str:
        return self.source.port_id

    @property
    def target_node_id(self) -> str:
        return self.target.node_id

    @property
    def target_port_id(self) -> str:
        return self.target.port_id

    def update(self, updates: Mapping[str, Any]) -> list[str]:
        """Shallow merge ``updates``; endpoints and ``id`` are never changed.

        Like :meth:`NodeSpec.update` the merge is all or nothing.
        """

        changes: dict[str, Any] = {}
        ignored: list[str] = []
        for key, value in updates.items():
            if key == "type":
                changes[key] = EdgeType(value)
            elif key == "waypoints":
                changes[key] = [Position.coerce(point) for point in value]
            elif key == "style":
                changes[key] = copy.deepcopy(dict(value))
            elif key == "label":
                changes[key] = copy.deepcopy(dict(value)) if value is not None else None
            elif key in ("source_arrow", "target_arrow"):
                changes[key] = ArrowType(value)
            elif key == "metadata":
                changes[key] = {**self.metadata, **value}
            else:
                ignored.append(key)
        for key, value in changes.items():
            setattr(self, key, value)
        self.metadata["updatedAt"] = now_ms()
        return ignored

    def to_payload(self) -> dict[str, Any]:
        """Return the serialisable representation of the edge."""

        payload = {
            "id": self.id,
            "type": self.type.value,
            "source": self.source.to_payload(),
            "target": self.target.to_payload(),
            "waypoints": [point.to_payload() for point in self.waypoints],
            "style": copy.deepcopy(self.style),
            "sourceArrow": self.source_arrow.value,
            "targetArrow": self.target_arrow.value,
            "metadata": copy.deepcopy(self.metadata),
        }
        if self.label is not None:
            payload["label"] = copy.deepcopy(self.label)
        return payload


def coerce_node_type(value: Any) -> NodeType:
    """Return ``value`` as a :class:`NodeType` or raise :class:`InvalidShapeType`."""

    if isinstance(value, NodeType):
        return value
    try:
        return NodeType(value)
    except (ValueError, TypeError) as exc:
        raise InvalidShapeType(value) from exc


def create_ports(node_type: NodeType | str) -> List[Port]:
    """Return the default ports for ``node_type``, each with a fresh id."""

    layout = DEFAULT_PORTS[coerce_node_type(node_type)]
    return [Port(id=new_id("port"), position=side, offset=offset) for side, offset in layout]


def create_node(
    type: NodeType | str,
    position: Position | Mapping[str, float] | Sequence[float],
    *,
    size: Size | Mapping[str, float] | Sequence[float] | None = None,
    data: Mapping[str, Any] | None = None,
    style: Mapping[str, Any] | None = None,
    id: str | None = None,
    parent_id: str | None = None,
    layer_id: str | None = None,
) -> NodeSpec:
    """Build a fully formed node with defaults and ports for its shape."""

    node_type = coerce_node_type(type)
    if position is None:
        raise ValueError("position is required to create a node")
    if size is None:
        size = DEFAULT_SIZES[node_type]
    return NodeSpec(
        id=id or new_id("node"),
        type=node_type,
        position=Position.coerce(position),
        size=Size.coerce(size),
        ports=create_ports(node_type),
        data={"label": "New Node", "description": "", **copy.deepcopy(dict(data or {}))},
        style={**default_node_style(), **copy.deepcopy(dict(style or {}))},
        metadata=default_node_metadata(),
        parent_id=parent_id,
        layer_id=layer_id,
    )


def create_edge(
    source_node_id: str,
    source_port_id: str,
    target_node_id: str,
    target_port_id: str,
    *,
    type: EdgeType | str = EdgeType.BEZIER,
    label: Mapping[str, Any] | None = None,
    style: Mapping[str, Any] | None = None,
    source_arrow: ArrowType | str = ArrowType.NONE,
    target_arrow: ArrowType | str = ArrowType.ARROW,
    id: str | None = None,
) -> EdgeSpec:
    """Build an edge between two ports.

    No endpoint is checked here; the graph validates endpoints when the edge
    is added.
    """

    return EdgeSpec(
        id=id or new_id("edge"),
        source=Endpoint(node_id=source_node_id, port_id=source_port_id),
        target=Endpoint(node_id=target_node_id, port_id=target_port_id),
        type=EdgeType(type),
        style={**default_edge_style(), **copy.deepcopy(dict(style or {}))},
        label=copy.deepcopy(dict(label)) if label is not None else None,
        source_arrow=ArrowType(source_arrow),
        target_arrow=ArrowType(target_arrow),
        metadata=default_edge_metadata(),
    )


def clone_node(node: NodeSpec, position: Position | None = None) -> NodeSpec:
    """Copy ``node`` under a fresh id with fresh, disconnected ports."""

    now = now_ms()
    clone = copy.deepcopy(node)
    clone.id = new_id("node")
    clone.position = (
        Position.coerce(position)
        if position is not None
        else Position(node.position.x + 20, node.position.y + 20)
    )
    for port in clone.ports:
        port.id = new_id("port")
        port.connected = False
    clone.metadata.update(createdAt=now, updatedAt=now)
    return clone


def clone_edge(edge: EdgeSpec) -> EdgeSpec:
    now = now_ms()
    clone = copy.deepcopy(edge)
    clone.id = new_id("edge")
    clone.metadata.update(createdAt=now, updatedAt=now)
    return clone


def _require(payload: Mapping[str, Any], key: str, kind: str) -> Any:
    if key not in payload:
        raise ValueError(f"{kind} payload is missing required field '{key}'")
    return payload[key]


def coerce_port_payload(payload: Mapping[str, Any]) -> Port:
    return Port(
        id=_require(payload, "id", "Port"),
        position=PortPosition(_require(payload, "position", "Port")),
        offset=payload.get("offset", 0.5),
        connected=bool(payload.get("connected", False)),
    )


def coerce_node_payload(payload: Mapping[str, Any]) -> NodeSpec:
    """Rebuild a :class:`NodeSpec` from its serialised mapping.

    Ports are restored verbatim rather than regenerated from the type, so a
    node whose ports were edited after creation survives a round trip.
    """

    node_id = _require(payload, "id", "Node")
    node_type = coerce_node_type(_require(payload, "type", "Node"))
    return NodeSpec(
        id=node_id,
        type=node_type,
        position=Position.coerce(_require(payload, "position", "Node")),
        size=Size.coerce(payload.get("size", DEFAULT_SIZES[node_type])),
        ports=[coerce_port_payload(item) for item in payload.get("ports", [])],
        data=copy.deepcopy(dict(payload.get("data", {}))),
        style=copy.deepcopy(dict(payload.get("style", {}))),
        metadata=copy.deepcopy(dict(payload.get("metadata", {}))),
        parent_id=payload.get("parentId"),
        layer_id=payload.get("layerId"),
    )


def _coerce_endpoint(payload: Mapping[str, Any], key: str) -> Endpoint:
    value = _require(payload, key, "Edge")
    if not isinstance(value, Mapping):
        raise ValueError(f"Edge field '{key}' must be a mapping")
    return Endpoint(
        node_id=_require(value, "nodeId", "Edge endpoint"),
        port_id=_require(value, "portId", "Edge endpoint"),
    )


def coerce_edge_payload(payload: Mapping[str, Any]) -> EdgeSpec:
    """Rebuild an :class:`EdgeSpec` from its serialised mapping."""

    label = payload.get("label")
    return EdgeSpec(
        id=_require(payload, "id", "Edge"),
        source=_coerce_endpoint(payload, "source"),
        target=_coerce_endpoint(payload, "target"),
        type=EdgeType(payload.get("type", EdgeType.BEZIER.value)),
        waypoints=[Position.coerce(point) for point in payload.get("waypoints", [])],
        style=copy.deepcopy(dict(payload.get("style", {}))),
        label=copy.deepcopy(dict(label)) if label is not None else None,
        source_arrow=ArrowType(payload.get("sourceArrow", ArrowType.NONE.value)),
        target_arrow=ArrowType(payload.get("targetArrow", ArrowType.ARROW.value)),
        metadata=copy.deepcopy(dict(payload.get("metadata", {}))),
    )


def coerce_layer_payload(payload: Mapping[str, Any]) -> Layer:
    return Layer(
        id=_require(payload, "id", "Layer"),
        name=payload.get("name", ""),
        visible=bool(payload.get("visible", True)),
        locked=bool(payload.get("locked", False)),
    )


__all__ = [
    "ArrowType",
    "Bounds",
    "DEFAULT_PORTS",
    "DEFAULT_SIZES",
    "EdgeSpec",
    "EdgeType",
    "Endpoint",
    "InvalidShapeType",
    "Layer",
    "NodeSpec",
    "NodeType",
    "Port",
    "PortPosition",
    "Position",
    "Size",
    "clone_edge",
    "clone_node",
    "coerce_edge_payload",
    "coerce_layer_payload",
    "coerce_node_payload",
    "coerce_node_type",
    "coerce_port_payload",
    "create_edge",
    "create_node",
    "create_ports",
    "default_edge_metadata",
    "default_edge_style",
    "default_node_metadata",
    "default_node_style",
]
