"""Round-trip tests for :meth:`GraphStore.to_json` and :meth:`GraphStore.from_json`."""

from __future__ import annotations

import json

import pytest

from fluxgraph.graph.model import Layer, create_edge, create_node
from fluxgraph.graph.store import FORMAT_VERSION, GraphIntegrityError, GraphStore
from fluxgraph.obs.events import EventBus


def build_document():
    store = GraphStore(metadata={"name": "Onboarding"})
    store.layers.append(Layer(id="notes", name="Notes", visible=False))
    start = create_node("oval", {"x": 0, "y": 0}, data={"label": "Start"})
    check = create_node("diamond", {"x": 200, "y": 100}, style={"backgroundColor": "#000"})
    note = create_node("note", {"x": 400, "y": 0}, layer_id="notes", parent_id=check.id)
    for node in (start, check, note):
        store.add_node(node)
    store.add_edge(
        create_edge(
            start.id,
            start.ports[1].id,
            check.id,
            check.ports[3].id,
            type="orthogonal",
            label={"text": "go", "position": 0.5},
        )
    )
    store.add_edge(create_edge(check.id, check.ports[2].id, start.id, start.ports[2].id))
    return store


def assert_same_graph(restored, original):
    assert restored.get_node_count() == original.get_node_count()
    assert restored.get_edge_count() == original.get_edge_count()
    assert restored.get_all_nodes() == original.get_all_nodes()
    assert restored.get_all_edges() == original.get_all_edges()
    assert restored.layers == original.layers
    assert restored.metadata == original.metadata


def test_roundtrip_preserves_everything():
    original = build_document()
    restored = GraphStore.from_json(original.to_json())

    assert_same_graph(restored, original)
    assert restored.load_report.ok


def test_roundtrip_survives_json_text():
    original = build_document()
    restored = GraphStore.from_json(json.loads(json.dumps(original.to_json())))
    assert_same_graph(restored, original)


def test_to_json_layout():
    data = build_document().to_json()

    assert data["version"] == FORMAT_VERSION
    assert [layer["id"] for layer in data["layers"]] == ["default", "notes"]
    assert data["metadata"] == {"name": "Onboarding"}
    edge = data["edges"][0]
    assert set(edge["source"]) == {"nodeId", "portId"}
    assert edge["type"] == "orthogonal"
    node = data["nodes"][2]
    assert node["layerId"] == "notes"
    assert len(node["ports"]) == 4


def test_to_json_is_detached_from_graph():
    store = build_document()
    data = store.to_json()
    data["nodes"][0]["data"]["label"] = "changed"
    data["metadata"]["name"] = "changed"

    assert store.get_all_nodes()[0].data["label"] == "Start"
    assert store.metadata["name"] == "Onboarding"


def test_manually_edited_ports_roundtrip_exactly():
    store = GraphStore()
    node = create_node("rectangle", {"x": 0, "y": 0})
    del node.ports[0]
    node.ports[0].offset = 0.2
    store.add_node(node)

    restored = GraphStore.from_json(store.to_json())

    assert restored.get_node(node.id).ports == node.ports


def test_empty_graph_roundtrip():
    restored = GraphStore.from_json(GraphStore().to_json())
    assert restored.get_node_count() == 0
    assert restored.get_bounds() is None


def test_missing_layers_default():
    restored = GraphStore.from_json({"nodes": [], "edges": []})
    assert restored.layers == [Layer.default()]


def test_from_json_drops_and_reports_dangling_edges(monkeypatch, caplog):
    monkeypatch.setenv("FLUXGRAPH_STRICT_LOAD", "0")
    data = build_document().to_json()
    removed = data["nodes"].pop(0)
    bogus_port = dict(data["edges"][0], id="bogus")
    bogus_port["target"] = {"nodeId": data["nodes"][0]["id"], "portId": "not-a-port"}
    data["edges"].append(bogus_port)

    with caplog.at_level("WARNING"):
        restored = GraphStore.from_json(data)

    assert restored.get_node_count() == 2
    assert restored.get_edge_count() == 0
    assert len(restored.load_report.dropped_edges) == 3
    assert "bogus" in restored.load_report.dropped_edges
    assert not restored.load_report.ok
    assert "Dropped 3 edge(s)" in caplog.text
    assert restored.get_node(removed["id"]) is None
    assert not any(port.connected for node in restored.get_all_nodes() for port in node.ports)


def test_from_json_strict_raises():
    data = build_document().to_json()
    data["nodes"].pop(0)

    with pytest.raises(GraphIntegrityError) as excinfo:
        GraphStore.from_json(data, strict=True)
    assert len(excinfo.value.dropped_edges) == 2


def test_from_json_skips_nodes_reusing_port_ids(monkeypatch, caplog):
    monkeypatch.setenv("FLUXGRAPH_STRICT_LOAD", "0")
    data = build_document().to_json()
    note = data["nodes"][2]
    note["ports"][0]["id"] = data["nodes"][0]["ports"][0]["id"]

    with caplog.at_level("WARNING"):
        restored = GraphStore.from_json(data)

    assert restored.get_node(note["id"]) is None
    assert restored.load_report.dropped_nodes == [note["id"]]
    assert restored.load_report.dropped_edges == []
    assert not restored.load_report.ok
    assert restored.get_edge_count() == 2
    assert "conflicting port ids" in caplog.text


def test_from_json_drops_edges_of_skipped_nodes(monkeypatch):
    monkeypatch.setenv("FLUXGRAPH_STRICT_LOAD", "0")
    data = build_document().to_json()
    data["nodes"][1]["ports"][0]["id"] = data["nodes"][0]["ports"][0]["id"]

    restored = GraphStore.from_json(data)

    assert restored.load_report.dropped_nodes == [data["nodes"][1]["id"]]
    assert len(restored.load_report.dropped_edges) == 2
    assert restored.get_edge_count() == 0


def test_from_json_strict_rejects_shared_port_ids():
    data = build_document().to_json()
    data["nodes"][2]["ports"][0]["id"] = data["nodes"][0]["ports"][0]["id"]

    with pytest.raises(GraphIntegrityError) as excinfo:
        GraphStore.from_json(data, strict=True)
    assert excinfo.value.dropped_nodes == [data["nodes"][2]["id"]]
    assert excinfo.value.dropped_edges == []


def test_from_json_strict_from_environment(monkeypatch):
    monkeypatch.setenv("FLUXGRAPH_STRICT_LOAD", "true")
    data = build_document().to_json()
    data["nodes"].pop(0)

    with pytest.raises(GraphIntegrityError):
        GraphStore.from_json(data)


def test_from_json_emits_loaded_event():
    bus = EventBus()
    restored = GraphStore.from_json(build_document().to_json(), event_bus=bus)

    events = list(bus.history())
    assert [event.type for event in events] == ["graph:loaded"]
    assert events[0].payload is restored.load_report


def test_clone_is_independent():
    original = build_document()
    clone = original.clone()

    assert_same_graph(clone, original)
    first = clone.get_all_nodes()[0]
    clone.remove_node(first.id)
    assert original.get_node(first.id) is not None
    assert original.get_edge_count() == 2
