import argparse
import atexit
import json
import logging
import threading

import dash
from dash import dcc, html
from dash import callback_context as ctx
from dash.dependencies import Input, Output, State
from dash_extensions import EventListener
from dash_extensions.enrich import DashProxy, Trigger, TriggerTransform

from trafficflow.config import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    LAYOUT_TIMEOUT_SECONDS,
    POLL_INTERVAL_MS,
    SAMPLE_FLOWS,
    SAMPLE_HOSTS,
    SURFACE_BORDER,
    SURFACE_BORDER_WIDTH,
    SURFACE_HEIGHT,
    SURFACE_WIDTH,
)
from trafficflow.coordinator import LayoutCoordinator
from trafficflow.interaction import PointerEvent, SurfaceRect, WheelEvent
from trafficflow.records import RecordSourceError, generate_sample_records, load_records
from trafficflow.renderer import scene_to_figure

logger = logging.getLogger(__name__)

# ---------- EVENTS ----------
# The surface frame is fixed at the viewport origin, so the body margin and page
# scroll never move it. Client coordinates minus this rect (the border) are
# surface coordinates.
SURFACE_RECT = SurfaceRect(left=SURFACE_BORDER_WIDTH, top=SURFACE_BORDER_WIDTH,
                           width=SURFACE_WIDTH, height=SURFACE_HEIGHT)

SURFACE_EVENTS = [
    {"event": "wheel", "props": ["type", "deltaY"]},
    {"event": "mousedown", "props": ["type", "clientX", "clientY", "button"]},
    {"event": "mousemove", "props": ["type", "clientX", "clientY"]},
]

# Document-wide capture for dragging: moves and releases anywhere on the page
PAGE_EVENTS = [
    {"event": "mousemove", "props": ["type", "clientX", "clientY"]},
    {"event": "mouseup", "props": ["type", "clientX", "clientY", "button"]},
]

# ---------- STYLES ----------
page_style = {
    "position": "relative",
    "width": "100vw",
    "height": "100vh",
    "overflow": "hidden",
    "overscrollBehavior": "none",
    "fontFamily": "Roboto, sans-serif",
}

sidebar_style = {
    "position": "absolute",
    "top": "20px",
    "right": "20px",
    "width": "260px",
    "display": "flex",
    "flexDirection": "column",
    "gap": "12px",
    "zIndex": 11,
}

button_style = {
    "backgroundColor": "#007BFF",
    "color": "white",
    "border": "none",
    "padding": "10px 16px",
    "borderRadius": "6px",
    "cursor": "pointer",
    "fontWeight": "bold",
    "fontSize": "14px",
    "boxShadow": "0 2px 4px rgba(0,0,0,0.2)",
    "width": "100%",
}

progress_box_style = {
    "padding": "15px",
    "borderRadius": "8px",
    "boxShadow": "0 2px 8px rgba(0,0,0,0.1)",
    "backgroundColor": "#FFFFFF",
    "border": "1px solid #E0E0E0",
}


def surface_style(cursor):
    return {
        "position": "fixed",
        "top": "0px",
        "left": "0px",
        "width": f"{SURFACE_WIDTH}px",
        "height": f"{SURFACE_HEIGHT}px",
        "border": SURFACE_BORDER,
        "cursor": cursor,
    }


# ---------- EVENT DISPATCH ----------

def handle_surface_event(controller, event, rect=SURFACE_RECT):
    """Feeds one surface event dict (from the EventListener) to the controller."""
    if not event:
        return False
    kind = event.get("type")
    if kind == "wheel":
        return controller.on_wheel(WheelEvent(delta_y=event.get("deltaY") or 0))
    if kind == "mousedown":
        return controller.on_pointer_down(PointerEvent(event["clientX"], event["clientY"], event.get("button", 0)))
    if kind == "mousemove":
        return controller.on_surface_move(PointerEvent(event["clientX"], event["clientY"]), rect)
    return False


def handle_page_event(controller, event):
    """Document-level moves drive an active drag; a release anywhere ends it."""
    if not event:
        return False
    kind = event.get("type")
    if kind == "mousemove":
        return controller.on_document_move(PointerEvent(event["clientX"], event["clientY"]))
    if kind == "mouseup":
        return controller.on_pointer_up(PointerEvent(event["clientX"], event["clientY"], event.get("button", 0)))
    return False


def progress_box(coordinator):
    """Progress sink: percent complete while loading, hidden otherwise."""
    if not coordinator.loading:
        return [], {**progress_box_style, "display": "none"}
    percent = round(coordinator.progress * 100)
    children = [
        html.H4("Computing layout"),
        html.Progress(value=str(percent), max="100", style={"width": "100%"}),
        html.P(f"{percent}%"),
    ]
    return children, {**progress_box_style, "display": "block"}


# ---------- APP ----------

def create_app(coordinator, poll_interval_ms=POLL_INTERVAL_MS, sample_hosts=SAMPLE_HOSTS, sample_flows=SAMPLE_FLOWS):
    lock = threading.Lock()

    app = DashProxy(__name__, title="Traffic Flow", transforms=[TriggerTransform()])

    initial_figure = scene_to_figure(coordinator.render())
    initial_cursor = coordinator.cursor_style()

    app.layout = html.Div([
        EventListener(
            id="page-events",
            events=PAGE_EVENTS,
            logging=False,
            children=html.Div([
                EventListener(
                    id="surface-events",
                    events=SURFACE_EVENTS,
                    logging=False,
                    children=html.Div(
                        dcc.Graph(
                            id="traffic-surface",
                            figure=initial_figure,
                            config={"staticPlot": True, "displayModeBar": False},
                        ),
                        id="surface-frame",
                        style=surface_style(initial_cursor),
                    ),
                ),
                html.Div([
                    html.Button("New sample", id="new-sample-btn", n_clicks=0, style=button_style),
                    html.Div(id="progress-box", style={**progress_box_style, "display": "none"}),
                ], style=sidebar_style),
            ], style=page_style),
        ),
        dcc.Interval(id="layout-poll", interval=poll_interval_ms),
        dcc.Store(id="frame-key-store", data=None),
    ])

    @app.callback(
        Output("traffic-surface", "figure"),
        Output("frame-key-store", "data"),
        Output("surface-frame", "style"),
        Output("progress-box", "children"),
        Output("progress-box", "style"),
        Trigger("layout-poll", "n_intervals"),
        Input("surface-events", "n_events"),
        Input("page-events", "n_events"),
        Input("new-sample-btn", "n_clicks"),
        State("surface-events", "event"),
        State("page-events", "event"),
        State("frame-key-store", "data"),
        prevent_initial_call=True,
    )
    def unified_callback(_surface_events, _page_events, _sample_clicks,
                         surface_event, page_event, last_key):
        # One mouse move can fire both listeners in the same batch
        triggered = {t["prop_id"].split(".")[0] for t in ctx.triggered}

        with lock:
            if "new-sample-btn" in triggered:
                coordinator.load(generate_sample_records(sample_hosts, sample_flows))
            if "surface-events" in triggered:
                handle_surface_event(coordinator.controller, surface_event)
            if "page-events" in triggered:
                handle_page_event(coordinator.controller, page_event)

            coordinator.poll()

            # JSON round trip so the key compares equal to the stored copy
            key = json.loads(json.dumps(coordinator.frame_key()))
            figure = scene_to_figure(coordinator.render()) if key != last_key else None
            style = surface_style(coordinator.cursor_style())
            progress_children, progress_style = progress_box(coordinator)

        if figure is None:
            return dash.no_update, dash.no_update, style, progress_children, progress_style
        return figure, key, style, progress_children, progress_style

    return app


# ---------- ENTRY POINT ----------

def main(argv=None):
    parser = argparse.ArgumentParser(prog="trafficflow", description="Interactive network traffic flow graph.")
    parser.add_argument("--records", help="CSV or JSON file of flow records; a random sample is used when omitted")
    parser.add_argument("--hosts", type=int, default=SAMPLE_HOSTS, help="hosts in a random sample")
    parser.add_argument("--flows", type=int, default=SAMPLE_FLOWS, help="flows in a random sample")
    parser.add_argument("--seed", type=int, default=None, help="random sample seed")
    parser.add_argument("--timeout", type=float, default=LAYOUT_TIMEOUT_SECONDS, help="layout timeout in seconds")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        if args.records:
            records = load_records(args.records)
        else:
            records = generate_sample_records(args.hosts, args.flows, seed=args.seed)
    except RecordSourceError as e:
        logger.error("%s", e)
        return 2

    coordinator = LayoutCoordinator(timeout=args.timeout)
    atexit.register(coordinator.close)
    coordinator.load(records)

    app = create_app(coordinator, sample_hosts=args.hosts, sample_flows=args.flows)
    app.run(host=args.host, port=args.port, debug=args.debug)
    return 0
