"""Geometry helpers for nodes placed in document coordinates."""
from __future__ import annotations

import math
from typing import Optional

from .model import Bounds, NodeSpec, PortPosition, Position


def node_bounds(node: NodeSpec) -> Bounds:
    """Return the rectangle spanned by ``node.position`` and ``node.size``."""

    return Bounds(x=node.position.x, y=node.position.y, width=node.size.width, height=node.size.height)


def node_center(node: NodeSpec) -> Position:
    return Position(
        x=node.position.x + node.size.width / 2,
        y=node.position.y + node.size.height / 2,
    )


def port_position(node: NodeSpec, port_id: str) -> Optional[Position]:
    """Return the document coordinates of ``port_id`` on ``node``.

    ``None`` is returned when the port does not belong to the node.
    """

    port = node.get_port(port_id)
    if port is None:
        return None

    bounds = node_bounds(node)
    if port.position is PortPosition.TOP:
        return Position(bounds.x + bounds.width * port.offset, bounds.y)
    if port.position is PortPosition.BOTTOM:
        return Position(bounds.x + bounds.width * port.offset, bounds.bottom)
    if port.position is PortPosition.LEFT:
        return Position(bounds.x, bounds.y + bounds.height * port.offset)
    return Position(bounds.right, bounds.y + bounds.height * port.offset)


def contains_point(bounds: Bounds, point: Position) -> bool:
    """Inclusive point-in-rectangle test."""

    return bounds.x <= point.x <= bounds.right and bounds.y <= point.y <= bounds.bottom


def is_point_in_node(point: Position, node: NodeSpec) -> bool:
    return contains_point(node_bounds(node), point)


def bounds_intersect(a: Bounds, b: Bounds) -> bool:
    """Return ``True`` when the open interiors of ``a`` and ``b`` overlap."""

    return a.x < b.right and a.right > b.x and a.y < b.bottom and a.bottom > b.y


def nodes_overlap(first: NodeSpec, second: NodeSpec) -> bool:
    """Return ``True`` when two nodes overlap or touch."""

    a = node_bounds(first)
    b = node_bounds(second)
    return not (a.right < b.x or b.right < a.x or a.bottom < b.y or b.bottom < a.y)


def snap_to_grid(value: float, grid_size: float) -> float:
    if grid_size <= 0:
        raise ValueError("grid_size must be positive")
    return math.floor(value / grid_size + 0.5) * grid_size


def snap_position_to_grid(position: Position, grid_size: float) -> Position:
    return Position(snap_to_grid(position.x, grid_size), snap_to_grid(position.y, grid_size))


__all__ = [
    "bounds_intersect",
    "contains_point",
    "is_point_in_node",
    "node_bounds",
    "node_center",
    "nodes_overlap",
    "port_position",
    "snap_position_to_grid",
    "snap_to_grid",
]
