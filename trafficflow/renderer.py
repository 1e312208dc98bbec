"""
Scene rendering for the traffic surface.

render_scene() decides what to draw: it is a pure function of the nodes,
links, viewport transform and cursor, and returns the whole frame as draw
primitives in model space. scene_to_figure() draws such a frame into a
plotly figure sized to the surface, applying the transform the way a
canvas setTransform() would (positions, stroke widths, marker sizes and
fonts all scale with the zoom).
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import plotly.graph_objs as go

from trafficflow.config import (
    BACKGROUND_COLOR,
    HIGH_PRIORITY_MAX,
    HOVER_THRESHOLD,
    LABEL_COLOR,
    LABEL_FONT_FAMILY,
    LABEL_FONT_SIZE,
    LABEL_OFFSET,
    LINK_COLOR,
    LINK_COLOR_HIGH,
    LINK_WIDTH,
    NODE_COLOR,
    NODE_COLOR_HUB,
    NODE_RADIUS_BASE,
    NODE_RADIUS_CAP,
    NODE_RADIUS_PER_DEGREE,
    SURFACE_HEIGHT,
    SURFACE_WIDTH,
    WELL_CONNECTED_DEGREE,
)


@dataclass(frozen=True)
class Segment:
    x0: float
    y0: float
    x1: float
    y1: float
    color: str
    width: float


@dataclass(frozen=True)
class Circle:
    node_id: str
    x: float
    y: float
    radius: float
    color: str


@dataclass(frozen=True)
class Label:
    x: float
    y: float
    text: str
    color: str = LABEL_COLOR
    font_size: float = LABEL_FONT_SIZE
    font_family: str = LABEL_FONT_FAMILY


@dataclass(frozen=True)
class Scene:
    """One complete frame. Primitives are in model space; scale/translate map them to the surface."""
    width: int
    height: int
    scale: float
    translate: Tuple[float, float]
    segments: Tuple[Segment, ...]
    circles: Tuple[Circle, ...]
    labels: Tuple[Label, ...]
    background: str = BACKGROUND_COLOR


def link_color(priority):
    return LINK_COLOR_HIGH if priority <= HIGH_PRIORITY_MAX else LINK_COLOR


def node_radius(degree):
    return min(NODE_RADIUS_CAP, degree * NODE_RADIUS_PER_DEGREE + NODE_RADIUS_BASE)


def node_color(degree):
    return NODE_COLOR_HUB if degree > WELL_CONNECTED_DEGREE else NODE_COLOR


def hovered(node, cursor_model, threshold=HOVER_THRESHOLD):
    """True when the model-space cursor lies strictly within `threshold` of the node."""
    return math.hypot(cursor_model[0] - node["x"], cursor_model[1] - node["y"]) < threshold


def render_scene(nodes, links, viewport, cursor: Optional[Tuple[float, float]],
                 width=SURFACE_WIDTH, height=SURFACE_HEIGHT):
    """
    Builds the full frame: every link, every node, and a label for each node
    near the cursor. Links whose endpoints are not in `nodes` are skipped.
    `cursor` is in surface space (None when the pointer has never been seen).
    """
    by_id = {node["id"]: node for node in nodes}

    segments = []
    for link in links:
        source = by_id.get(link.get("source"))
        target = by_id.get(link.get("target"))
        if source is None or target is None:
            continue
        segments.append(Segment(
            source["x"], source["y"], target["x"], target["y"],
            color=link_color(link.get("priority", math.inf)),
            width=LINK_WIDTH,
        ))

    cursor_model = viewport.to_model_space(cursor) if cursor is not None else None
    circles = []
    labels = []
    for node in nodes:
        degree = node.get("degree", 0)
        circles.append(Circle(node["id"], node["x"], node["y"], node_radius(degree), node_color(degree)))
        if cursor_model is not None and hovered(node, cursor_model):
            labels.append(Label(node["x"] + LABEL_OFFSET[0], node["y"] + LABEL_OFFSET[1], str(node["id"])))

    return Scene(
        width=width,
        height=height,
        scale=viewport.scale,
        translate=viewport.translate,
        segments=tuple(segments),
        circles=tuple(circles),
        labels=tuple(labels),
    )


def scene_to_figure(scene: Scene):
    """Draws a Scene into a static plotly figure whose axes are the surface rectangle."""
    s = scene.scale
    tx, ty = scene.translate

    def _sx(x):
        return x * s + tx

    def _sy(y):
        return y * s + ty

    fig = go.Figure()

    # One trace per stroke style; None breaks the line between segments
    strokes = {}
    for seg in scene.segments:
        xs, ys = strokes.setdefault((seg.color, seg.width), ([], []))
        xs.extend([_sx(seg.x0), _sx(seg.x1), None])
        ys.extend([_sy(seg.y0), _sy(seg.y1), None])
    for (color, width), (xs, ys) in strokes.items():
        fig.add_trace(go.Scatter(
            x=xs, y=ys,
            mode="lines",
            line=dict(color=color, width=width * s),
            hoverinfo="skip",
            showlegend=False,
        ))

    if scene.circles:
        fig.add_trace(go.Scatter(
            x=[_sx(c.x) for c in scene.circles],
            y=[_sy(c.y) for c in scene.circles],
            mode="markers",
            marker=dict(
                size=[2 * c.radius * s for c in scene.circles],
                color=[c.color for c in scene.circles],
                line=dict(width=0),
            ),
            customdata=[c.node_id for c in scene.circles],
            hoverinfo="skip",
            showlegend=False,
        ))

    if scene.labels:
        first = scene.labels[0]
        fig.add_trace(go.Scatter(
            x=[_sx(label.x) for label in scene.labels],
            y=[_sy(label.y) for label in scene.labels],
            mode="text",
            text=[label.text for label in scene.labels],
            textposition="top right",
            textfont=dict(size=first.font_size * s, color=first.color, family=first.font_family),
            hoverinfo="skip",
            showlegend=False,
        ))

    fig.update_layout(
        width=scene.width,
        height=scene.height,
        margin=dict(l=0, r=0, t=0, b=0),
        xaxis=dict(range=[0, scene.width], visible=False, fixedrange=True),
        # Surface y grows downward
        yaxis=dict(range=[scene.height, 0], visible=False, fixedrange=True),
        plot_bgcolor=scene.background,
        paper_bgcolor=scene.background,
        dragmode=False,
        hovermode=False,
        showlegend=False,
    )
    return fig
