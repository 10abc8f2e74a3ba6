"""Graph subpackage containing the diagram model, store and queries."""

from .model import (
    ArrowType,
    Bounds,
    EdgeSpec,
    EdgeType,
    InvalidShapeType,
    Layer,
    NodeSpec,
    NodeType,
    Port,
    PortPosition,
    Position,
    Size,
    create_edge,
    create_node,
)
from .query import QueryService
from .store import Graph, GraphIntegrityError, GraphStore, LoadReport, PortConflictError

__all__ = [
    "ArrowType",
    "Bounds",
    "EdgeSpec",
    "EdgeType",
    "Graph",
    "GraphIntegrityError",
    "GraphStore",
    "InvalidShapeType",
    "Layer",
    "LoadReport",
    "NodeSpec",
    "NodeType",
    "Port",
    "PortConflictError",
    "PortPosition",
    "Position",
    "QueryService",
    "Size",
    "create_edge",
    "create_node",
]
