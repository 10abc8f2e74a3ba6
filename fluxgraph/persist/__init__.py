"""Persistence utilities for fluxgraph."""

from .export import GraphExporter

__all__ = ["GraphExporter"]
