"""fluxgraph package initialization.

This module exposes the graph model used by the diagram editor: node and
edge factories plus the :class:`Graph` container.
"""

from .graph import Graph, GraphStore, InvalidShapeType, create_edge, create_node

__all__ = ["Graph", "GraphStore", "InvalidShapeType", "create_edge", "create_node"]
