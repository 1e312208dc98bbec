"""
Force-directed layout for traffic graphs, run in its own process.

The simulation follows the Fruchterman-Reingold scheme used by
networkx.spring_layout, expressed directly in surface pixels:

    repulsion   k^2 / d      between every pair of nodes
    attraction  d^2 / k      along every link (parallel links add up)
    gravity                  toward the centre of the surface

Each step moves a node by the current step length in the direction of its
net force, and positions are clipped to the surface rectangle. The step
length adapts to the total force energy (Hu, "Efficient and high quality
force-directed graph drawing", 2005): it shrinks as soon as the energy
stops falling and grows back after a run of improving steps. The run ends
when the step length, or the mean net force, drops below `threshold * k`.

Above `exact_max_nodes` nodes, repulsion is approximated on a grid:
nodes in the same or adjacent cells repel exactly, farther cells act as a
single body at their centroid.

A LayoutHandle owns one worker process and its result queue. The worker
sends {"generation", "progress"} messages while it runs and a single
{"generation", "nodes"} message when it finishes; on any internal failure
it logs and exits without sending a result.
"""

import logging
import multiprocessing as mp
import queue

import numpy as np

from trafficflow.config import (
    LAYOUT_BLOCK_SIZE,
    LAYOUT_COOLING,
    LAYOUT_EXACT_MAX_NODES,
    LAYOUT_GRAVITY,
    LAYOUT_GRID_CELLS,
    LAYOUT_ITERATIONS,
    LAYOUT_THRESHOLD,
    PROGRESS_EVERY,
    SURFACE_HEIGHT,
    SURFACE_WIDTH,
)

logger = logging.getLogger(__name__)

# Improving steps in a row before the step length grows again
IMPROVING_RUN = 5


def _seed_positions(nodes, width, height, rng):
    pos = np.array([[node.get("x", np.nan), node.get("y", np.nan)] for node in nodes], dtype=float)
    bad = ~np.isfinite(pos).all(axis=1)
    if bad.any():
        # Unusable seeds start near the centre, jittered so they can separate
        center = np.array([width / 2.0, height / 2.0])
        pos[bad] = center + rng.uniform(-1.0, 1.0, size=(int(bad.sum()), 2))
    return pos


def _link_index(nodes, links):
    index = {node["id"]: i for i, node in enumerate(nodes)}
    pairs = [
        (index[link["source"]], index[link["target"]])
        for link in links
        if link.get("source") in index and link.get("target") in index
        and link["source"] != link["target"]
    ]
    if not pairs:
        empty = np.zeros(0, dtype=int)
        return empty, empty
    src, dst = np.array(pairs, dtype=int).T
    return src, dst


def _repel(targets, sources, k2, weights=None):
    delta = targets[:, None, :] - sources[None, :, :]
    distance = np.linalg.norm(delta, axis=-1)
    np.clip(distance, 0.01, None, out=distance)
    coeff = k2 / distance**2
    if weights is not None:
        coeff *= weights
    return np.einsum("ijk,ij->ik", delta, coeff)


def _repulsion(pos, k, block_size):
    displacement = np.zeros_like(pos)
    k2 = k * k
    for start in range(0, len(pos), block_size):
        stop = start + block_size
        displacement[start:stop] = _repel(pos[start:stop], pos, k2)
    return displacement


def _grid_repulsion(pos, k, width, height, cells, block_size):
    """
    Repulsion on a grid of about `cells` square cells. Pairs in the same or
    adjacent cells are exact; every other cell pushes with its node count
    from its centroid.
    """
    k2 = k * k
    side = np.sqrt(width * height / cells)
    cell = np.floor(pos / side).astype(int)
    keys, inverse, counts = np.unique(cell, axis=0, return_inverse=True, return_counts=True)
    inverse = inverse.reshape(-1)
    centroids = np.zeros((len(keys), 2))
    np.add.at(centroids, inverse, pos)
    centroids /= counts[:, None]

    displacement = np.zeros_like(pos)
    for start in range(0, len(pos), block_size):
        stop = start + block_size
        near = (np.abs(cell[start:stop, None, :] - keys[None, :, :]) <= 1).all(axis=-1)
        weights = np.where(near, 0.0, counts[None, :].astype(float))
        displacement[start:stop] = _repel(pos[start:stop], centroids, k2, weights)

    order = np.argsort(inverse, kind="stable")
    members = np.split(order, np.cumsum(counts)[:-1])
    slot = {key: i for i, key in enumerate(map(tuple, keys.tolist()))}
    for i, (cx, cy) in enumerate(keys.tolist()):
        around = [
            members[slot[(cx + dx, cy + dy)]]
            for dx in (-1, 0, 1)
            for dy in (-1, 0, 1)
            if (cx + dx, cy + dy) in slot
        ]
        sources = pos[np.concatenate(around)]
        for start in range(0, len(members[i]), block_size):
            rows = members[i][start:start + block_size]
            displacement[rows] += _repel(pos[rows], sources, k2)
    return displacement


def _attraction(pos, src, dst, k, displacement):
    if not len(src):
        return
    delta = pos[src] - pos[dst]
    distance = np.linalg.norm(delta, axis=1)
    np.clip(distance, 0.01, None, out=distance)
    pull = delta * (distance / k)[:, None]
    np.add.at(displacement, src, -pull)
    np.add.at(displacement, dst, pull)


def force_layout(
    nodes,
    links,
    width=SURFACE_WIDTH,
    height=SURFACE_HEIGHT,
    iterations=LAYOUT_ITERATIONS,
    threshold=LAYOUT_THRESHOLD,
    gravity=LAYOUT_GRAVITY,
    cooling=LAYOUT_COOLING,
    block_size=LAYOUT_BLOCK_SIZE,
    exact_max_nodes=LAYOUT_EXACT_MAX_NODES,
    grid_cells=LAYOUT_GRID_CELLS,
    progress=None,
    progress_every=PROGRESS_EVERY,
    seed=None,
):
    """
    Runs the force simulation and returns new node dicts with updated x/y.

    All other node fields are carried over unchanged. `progress`, when given,
    is called with fractions in [0, 1] every `progress_every` iterations and
    once more with 1.0 when the run ends (converged or not).
    """
    n = len(nodes)
    if n == 0:
        if progress:
            progress(1.0)
        return []

    rng = np.random.default_rng(seed)
    pos = _seed_positions(nodes, width, height, rng)

    if n > 1 and iterations > 0:
        src, dst = _link_index(nodes, links)
        center = np.array([width / 2.0, height / 2.0])
        radius = min(width, height) / 2.0
        k = np.sqrt(width * height / n)
        pull_to_center = gravity * width * height / radius**2
        approximate = n > exact_max_nodes
        cells = max(1, int(grid_cells * np.sqrt(n)))
        settled = threshold * k

        max_step = step = max(width, height) * 0.1
        energy = np.inf
        improving = 0

        for iteration in range(iterations):
            if approximate:
                displacement = _grid_repulsion(pos, k, width, height, cells, block_size)
            else:
                displacement = _repulsion(pos, k, block_size)
            _attraction(pos, src, dst, k, displacement)
            displacement += pull_to_center * (center - pos)

            length = np.linalg.norm(displacement, axis=1)
            np.clip(length, 0.01, None, out=length)
            pos = pos + displacement * (step / length)[:, None]
            np.clip(pos[:, 0], 0.0, width, out=pos[:, 0])
            np.clip(pos[:, 1], 0.0, height, out=pos[:, 1])

            previous, energy = energy, float(np.dot(length, length))
            if energy < previous:
                improving += 1
                if improving >= IMPROVING_RUN:
                    improving = 0
                    step = min(max_step, step / cooling)
            else:
                improving = 0
                step *= cooling

            if progress and (iteration + 1) % progress_every == 0:
                progress((iteration + 1) / iterations)
            if step < settled or length.mean() < settled:
                logger.debug("Layout converged after %d iterations", iteration + 1)
                break
    else:
        pos[:, 0] = np.clip(pos[:, 0], 0.0, width)
        pos[:, 1] = np.clip(pos[:, 1], 0.0, height)

    if progress:
        progress(1.0)

    return [
        {**node, "x": float(x), "y": float(y)}
        for node, (x, y) in zip(nodes, pos)
    ]



def _layout_worker(generation, snapshot, outbox, options):
    # Entry point of the worker process; must stay importable at module level for spawn
    def _progress(fraction):
        outbox.put({"generation": generation, "progress": fraction})

    try:
        nodes = force_layout(snapshot["nodes"], snapshot["links"], progress=_progress, **options)
    except Exception:
        logger.exception("Layout for generation %d failed", generation)
        return
    outbox.put({"generation": generation, "nodes": nodes})


class LayoutHandle:
    """
    One layout worker process bound to one generation.

    The handle is the only way to reach the worker: start() ships the
    snapshot, poll() drains whatever messages have arrived without
    blocking, terminate() kills the process outright.
    """

    def __init__(self, generation, options=None, context=None):
        self.generation = generation
        self.options = dict(options or {})
        self._ctx = context or mp.get_context("spawn")
        self._outbox = None
        self._process = None
        self.exitcode = None

    def start(self, snapshot):
        self._outbox = self._ctx.Queue()
        self._process = self._ctx.Process(
            target=_layout_worker,
            args=(self.generation, snapshot, self._outbox, self.options),
            name=f"layout-gen-{self.generation}",
            daemon=True,
        )
        self._process.start()
        logger.debug("Layout worker pid=%s started for generation %d", self._process.pid, self.generation)

    def poll(self):
        messages = []
        if self._outbox is None:
            return messages
        try:
            while True:
                messages.append(self._outbox.get_nowait())
        except queue.Empty:
            pass
        return messages

    def is_alive(self):
        return self._process is not None and self._process.is_alive()

    def terminate(self):
        if self._process is not None:
            if self._process.is_alive():
                self._process.terminate()
            self._process.join(timeout=1.0)
            self.exitcode = self._process.exitcode
            self._process = None
        if self._outbox is not None:
            self._outbox.close()
            self._outbox = None
