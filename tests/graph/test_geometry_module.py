"""Tests for :mod:`fluxgraph.graph.geometry`."""

from __future__ import annotations

import pytest

from fluxgraph.graph import geometry
from fluxgraph.graph.model import Bounds, Position, create_node


def make_node(x, y, width=100, height=50, type="rectangle"):
    return create_node(type, {"x": x, "y": y}, size={"width": width, "height": height})


def test_node_bounds_and_center():
    node = make_node(10, 20)
    bounds = geometry.node_bounds(node)
    assert bounds == Bounds(10, 20, 100, 50)
    assert (bounds.right, bounds.bottom) == (110, 70)
    assert geometry.node_center(node) == Position(60, 45)


def test_port_position_per_side():
    node = make_node(0, 0)
    top, right, bottom, left = node.ports

    assert geometry.port_position(node, top.id) == Position(50, 0)
    assert geometry.port_position(node, right.id) == Position(100, 25)
    assert geometry.port_position(node, bottom.id) == Position(50, 50)
    assert geometry.port_position(node, left.id) == Position(0, 25)
    assert geometry.port_position(node, "missing") is None


def test_point_hit_testing_is_inclusive():
    node = make_node(0, 0)
    assert geometry.is_point_in_node(Position(100, 50), node)
    assert not geometry.is_point_in_node(Position(101, 50), node)


def test_overlap_and_intersection():
    first = make_node(0, 0)
    touching = make_node(100, 0)
    apart = make_node(300, 300)

    assert geometry.nodes_overlap(first, touching)
    assert not geometry.nodes_overlap(first, apart)
    assert not geometry.bounds_intersect(geometry.node_bounds(first), geometry.node_bounds(touching))
    assert geometry.bounds_intersect(Bounds(0, 0, 10, 10), Bounds(5, 5, 10, 10))


def test_snap_to_grid():
    assert geometry.snap_to_grid(14, 10) == 10
    assert geometry.snap_to_grid(15, 10) == 20
    assert geometry.snap_position_to_grid(Position(23, 37), 20) == Position(20, 40)
    with pytest.raises(ValueError):
        geometry.snap_to_grid(5, 0)
