"""Graph export utilities."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Literal, Optional

from fluxgraph.graph.store import GraphStore


@dataclass
class GraphExporter:
    """Serialize the in-memory graph to a portable text document."""

    graph: GraphStore

    def export(self, *, format: Literal["json"] = "json", indent: Optional[int] = 2) -> str:
        """Export the graph to the requested ``format``."""

        if format == "json":
            return json.dumps(self.graph.to_json(), indent=indent, ensure_ascii=False)
        raise ValueError(f"Unsupported export format: {format}")

    @staticmethod
    def load(text: str, *, strict: Optional[bool] = None) -> GraphStore:
        """Parse ``text`` produced by :meth:`export` back into a graph."""

        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("Graph document must be a JSON object")
        return GraphStore.from_json(data, strict=strict)
