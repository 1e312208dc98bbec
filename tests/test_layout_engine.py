import math
import queue
import time

import numpy as np
import pytest

from trafficflow import layout_engine
from trafficflow.config import LAYOUT_ITERATIONS, SURFACE_HEIGHT, SURFACE_WIDTH
from trafficflow.graph_builder import build_graph
from trafficflow.layout_engine import LayoutHandle, _grid_repulsion, _layout_worker, _repulsion, force_layout


@pytest.fixture
def graph(rng):
    records = [{"SourceIP": f"h{i % 12}", "DestinationIP": f"h{(i * 5) % 12}", "Priority": i % 4} for i in range(30)]
    nodes, links = build_graph(records, rng=rng)
    for node in nodes[:2]:
        node["isHighPriority"] = True
        node["group"] = 3
    return nodes, links


def test_layout_keeps_identities_and_non_positional_fields(graph):
    nodes, links = graph
    result = force_layout(nodes, links, iterations=40, seed=0)

    assert [n["id"] for n in result] == [n["id"] for n in nodes]
    for before, after in zip(nodes, result):
        assert {k: v for k, v in after.items() if k not in ("x", "y")} == \
               {k: v for k, v in before.items() if k not in ("x", "y")}


def test_layout_positions_are_finite_and_inside_the_surface(graph):
    nodes, links = graph
    for node in force_layout(nodes, links, iterations=60, seed=0):
        assert math.isfinite(node["x"]) and math.isfinite(node["y"])
        assert 0 <= node["x"] <= SURFACE_WIDTH
        assert 0 <= node["y"] <= SURFACE_HEIGHT


def test_layout_does_not_mutate_its_input(graph):
    nodes, links = graph
    seeds = [(n["x"], n["y"]) for n in nodes]
    force_layout(nodes, links, iterations=20, seed=0)
    assert [(n["x"], n["y"]) for n in nodes] == seeds


def test_progress_fractions_rise_to_one(graph):
    nodes, links = graph
    seen = []
    force_layout(nodes, links, iterations=30, progress_every=5, progress=seen.append, seed=0)

    assert seen[-1] == 1.0
    assert all(0.0 <= p <= 1.0 for p in seen)
    assert seen == sorted(seen)
    assert len(seen) >= 2


def test_layout_ignores_links_to_unknown_nodes():
    nodes = [{"id": "A", "x": 10.0, "y": 10.0, "degree": 1}, {"id": "B", "x": 20.0, "y": 20.0, "degree": 1}]
    links = [{"source": "A", "target": "B"}, {"source": "A", "target": "ghost"}]
    result = force_layout(nodes, links, iterations=10, seed=0)
    assert len(result) == 2


def test_non_finite_seeds_are_repaired():
    nodes = [
        {"id": "A", "x": float("nan"), "y": 5.0},
        {"id": "B", "x": float("inf"), "y": float("nan")},
        {"id": "C"},
    ]
    result = force_layout(nodes, [{"source": "A", "target": "B"}], iterations=25, seed=3)
    for node in result:
        assert math.isfinite(node["x"]) and math.isfinite(node["y"])
    # Jittered seeds let coincident nodes separate
    assert (result[0]["x"], result[0]["y"]) != (result[2]["x"], result[2]["y"])


def test_empty_and_single_node_graphs():
    seen = []
    assert force_layout([], [], progress=seen.append) == []
    assert seen == [1.0]

    single = force_layout([{"id": "solo", "x": 100.0, "y": 200.0}], [])
    assert single == [{"id": "solo", "x": 100.0, "y": 200.0}]


def test_worker_sends_progress_then_one_result(graph):
    nodes, links = graph
    outbox = queue.Queue()
    _layout_worker(7, {"nodes": nodes, "links": links}, outbox, {"iterations": 20, "progress_every": 5})

    messages = []
    while not outbox.empty():
        messages.append(outbox.get_nowait())
    assert all(m["generation"] == 7 for m in messages)
    assert "nodes" in messages[-1]
    assert all("progress" in m for m in messages[:-1])
    assert len(messages[-1]["nodes"]) == len(nodes)


def test_worker_failure_sends_no_result():
    outbox = queue.Queue()
    _layout_worker(1, {"links": []}, outbox, {})
    assert outbox.empty()


def test_layout_handle_runs_in_a_separate_process(graph):
    nodes, links = graph
    handle = LayoutHandle(3, options={"iterations": 20})
    handle.start({"nodes": nodes, "links": links})
    try:
        result = None
        deadline = time.monotonic() + 60
        while result is None and time.monotonic() < deadline:
            for message in handle.poll():
                assert message["generation"] == 3
                if "nodes" in message:
                    result = message["nodes"]
            time.sleep(0.05)
    finally:
        handle.terminate()

    assert result is not None
    assert [n["id"] for n in result] == [n["id"] for n in nodes]
    assert not handle.is_alive()


def test_terminate_is_idempotent_and_poll_after_terminate_is_empty():
    handle = LayoutHandle(1)
    handle.terminate()
    handle.terminate()
    assert handle.poll() == []
    assert not handle.is_alive()


def test_terminate_stops_a_running_worker(graph):
    nodes, links = graph
    # A zero threshold never settles, so the worker is still busy when terminated
    handle = LayoutHandle(4, options={"iterations": 10**7, "threshold": 0.0, "progress_every": 1000})
    handle.start({"nodes": nodes, "links": links})
    try:
        seen = []
        deadline = time.monotonic() + 60
        while not seen and time.monotonic() < deadline:
            seen.extend(handle.poll())
            time.sleep(0.05)
        assert seen and all("progress" in m for m in seen)
        assert handle.is_alive()
    finally:
        handle.terminate()

    assert not handle.is_alive()
    assert handle.exitcode is not None and handle.exitcode != 0
    assert handle.poll() == []


def test_small_graph_settles_before_the_iteration_cap(triangle_records, rng):
    nodes, links = build_graph(triangle_records, rng=rng)
    seen = []
    force_layout(nodes, links, progress=seen.append, progress_every=1, seed=0)

    # One call per iteration plus the final 1.0
    assert len(seen) - 1 < LAYOUT_ITERATIONS
    assert seen[-1] == 1.0


def test_zero_threshold_runs_every_iteration(graph):
    nodes, links = graph
    seen = []
    force_layout(nodes, links, iterations=30, threshold=0.0, progress=seen.append, progress_every=1, seed=0)
    assert len(seen) == 31


def test_grid_repulsion_is_exact_when_all_cells_are_adjacent():
    pos = np.random.default_rng(0).uniform([0, 0], [SURFACE_WIDTH, SURFACE_HEIGHT], size=(50, 2))
    k = np.sqrt(SURFACE_WIDTH * SURFACE_HEIGHT / 50)

    approx = _grid_repulsion(pos, k, SURFACE_WIDTH, SURFACE_HEIGHT, cells=1, block_size=16)
    assert np.allclose(approx, _repulsion(pos, k, block_size=512))


def test_large_graphs_use_grid_repulsion(graph, monkeypatch):
    def _exact(*args):
        raise AssertionError("exact repulsion used above the node limit")

    monkeypatch.setattr(layout_engine, "_repulsion", _exact)
    nodes, links = graph
    for node in force_layout(nodes, links, iterations=20, exact_max_nodes=5, seed=0):
        assert math.isfinite(node["x"]) and math.isfinite(node["y"])
        assert 0 <= node["x"] <= SURFACE_WIDTH
        assert 0 <= node["y"] <= SURFACE_HEIGHT


def test_non_finite_seeds_are_jittered_around_the_centre():
    nodes = [{"id": "A", "x": float("nan"), "y": 1.0}, {"id": "B"}, {"id": "C", "x": 3.0, "y": 4.0}]
    pos = layout_engine._seed_positions(nodes, SURFACE_WIDTH, SURFACE_HEIGHT, np.random.default_rng(0))

    center = np.array([SURFACE_WIDTH / 2, SURFACE_HEIGHT / 2])
    assert np.all(np.abs(pos[:2] - center) <= 1.0)
    assert not np.array_equal(pos[0], pos[1])
    assert pos[2].tolist() == [3.0, 4.0]
