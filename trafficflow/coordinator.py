"""
Host coordinator: owns the current graph generation and its layout worker.

    Idle -> Building -> Computing (loading) -> Ready

Every load() starts a new generation. The previous worker is terminated
before the new one is installed, and every message coming back is checked
against the current generation number, so a late result from a superseded
generation can never overwrite newer positions. If the worker fails to
start, dies without answering, or stays silent past the timeout, the
seeded positions are kept and loading ends anyway.
"""

import copy
import enum
import logging
import random
import time

from trafficflow.config import LAYOUT_TIMEOUT_SECONDS, SURFACE_HEIGHT, SURFACE_WIDTH
from trafficflow.graph_builder import build_graph
from trafficflow.interaction import InteractionController
from trafficflow.layout_engine import LayoutHandle
from trafficflow.renderer import render_scene
from trafficflow.viewport import Viewport

logger = logging.getLogger(__name__)


class CoordinatorState(enum.Enum):
    IDLE = "idle"
    BUILDING = "building"
    COMPUTING = "computing"
    READY = "ready"


class LayoutCoordinator:
    def __init__(
        self,
        width=SURFACE_WIDTH,
        height=SURFACE_HEIGHT,
        engine_factory=None,
        layout_options=None,
        timeout=LAYOUT_TIMEOUT_SECONDS,
        clock=time.monotonic,
        rng=None,
        redraw_on_hover=False,
    ):
        self.width = width
        self.height = height
        self.layout_options = dict(layout_options or {"width": width, "height": height})
        self.engine_factory = engine_factory or self._spawn_engine
        self.timeout = timeout
        self.clock = clock
        self.rng = rng or random.Random()
        self.redraw_on_hover = redraw_on_hover

        self.viewport = Viewport()
        self.controller = InteractionController(self.viewport)

        self.nodes = []
        self.links = []
        self.state = CoordinatorState.IDLE
        self.loading = False
        self.progress = 0.0
        self.generation = 0

        self._handle = None
        self._dispatched_at = None
        self._nodes_revision = 0
        self._links_revision = 0

    # ---------- engine handle ----------

    def _spawn_engine(self, generation):
        return LayoutHandle(generation, options=self.layout_options)

    def _teardown(self):
        if self._handle is not None:
            self._handle.terminate()
            self._handle = None
        self._dispatched_at = None

    def replace(self, generation):
        """Terminates the current engine handle, then installs a new one for `generation`."""
        self._teardown()
        self._handle = self.engine_factory(generation)
        return self._handle

    def _finish(self):
        self.state = CoordinatorState.READY
        self.loading = False

    def _abandon(self):
        self._teardown()
        self._finish()

    # ---------- generations ----------

    def load(self, records):
        """Starts a new generation from raw flow records and dispatches its layout."""
        self.generation += 1
        generation = self.generation
        self._teardown()

        self.state = CoordinatorState.BUILDING
        self.nodes, self.links = build_graph(records, self.width, self.height, self.rng)
        self._nodes_revision += 1
        self._links_revision += 1

        self.state = CoordinatorState.COMPUTING
        self.loading = True
        self.progress = 0.0

        snapshot = {"nodes": copy.deepcopy(self.nodes), "links": copy.deepcopy(self.links)}
        try:
            self.replace(generation).start(snapshot)
        except Exception:
            logger.warning("Layout engine failed to start for generation %d; keeping seeded positions",
                           generation, exc_info=True)
            self._abandon()
            return generation

        self._dispatched_at = self.clock()
        logger.info("Generation %d: %d nodes, %d links sent to layout",
                    generation, len(self.nodes), len(self.links))
        return generation

    def accept(self, message):
        """
        Applies one engine message. Returns True when it replaced the node
        positions. Messages from other generations, and anything arriving
        after this generation's result, are dropped.
        """
        if message.get("generation") != self.generation or not self.loading:
            logger.debug("Dropping layout message for generation %s (current %d)",
                         message.get("generation"), self.generation)
            return False

        if "progress" in message:
            self.progress = min(1.0, max(0.0, float(message["progress"])))
            logger.debug("Generation %d layout at %.0f%%", self.generation, self.progress * 100)
            return False

        nodes = message.get("nodes")
        if not isinstance(nodes, list):
            return False
        self.nodes = nodes
        self._nodes_revision += 1
        self.progress = 1.0
        self._abandon()
        logger.info("Generation %d layout applied", self.generation)
        return True

    def poll(self):
        """Drains the engine without blocking. Returns True when node positions changed."""
        handle = self._handle
        if handle is None:
            return False

        # Liveness is read before draining so a worker that answered and exited is not misread as failed
        alive = handle.is_alive()
        changed = False
        for message in handle.poll():
            changed = self.accept(message) or changed
        if self._handle is not handle:
            return changed

        if not alive:
            logger.warning("Layout engine for generation %d exited without a result", self.generation)
            self._abandon()
        elif self.clock() - self._dispatched_at > self.timeout:
            logger.warning("Layout engine for generation %d timed out after %.0fs", self.generation, self.timeout)
            self._abandon()
        return changed

    def close(self):
        self._teardown()

    # ---------- rendering ----------

    def frame_key(self):
        """Changes whenever the frame needs redrawing: nodes, links, scale or translate."""
        key = (self._nodes_revision, self._links_revision, self.viewport.scale) + self.viewport.translate
        if self.redraw_on_hover:
            key += (self.controller.cursor,)
        return key

    def render(self):
        return render_scene(self.nodes, self.links, self.viewport, self.controller.cursor,
                            width=self.width, height=self.height)

    def cursor_style(self):
        return self.controller.cursor_style(self.loading)
