# ------------------------------
# Config (defaults; no flags)
# ------------------------------
# App-wide constants. The command line in app.py may override the server and
# timeout settings; everything else is fixed for a given build.

# ---------- SURFACE ----------
SURFACE_WIDTH = 1800
SURFACE_HEIGHT = 1200
SURFACE_BORDER_WIDTH = 1
SURFACE_BORDER = f"{SURFACE_BORDER_WIDTH}px solid black"

# ---------- VIEWPORT ----------
MIN_SCALE = 0.5
MAX_SCALE = 5.0
ZOOM_IN_FACTOR = 1.1
ZOOM_OUT_FACTOR = 0.9

# ---------- GRAPH DEFAULTS ----------
DEFAULT_PROTOCOL = "TCP"
DEFAULT_PACKET_SIZE = 1000
DEFAULT_PRIORITY = 999  # "no priority assigned", sorts as least urgent

# ---------- DRAWING ----------
HIGH_PRIORITY_MAX = 2          # links with priority <= this are emphasised
WELL_CONNECTED_DEGREE = 10     # nodes with degree above this get the strong fill
NODE_RADIUS_CAP = 2.0
NODE_RADIUS_PER_DEGREE = 0.2
NODE_RADIUS_BASE = 1.0
LINK_WIDTH = 0.5
HOVER_THRESHOLD = 20.0         # model-space units, independent of zoom
LABEL_OFFSET = (5.0, -5.0)
LABEL_FONT_SIZE = 10
LABEL_FONT_FAMILY = "Arial"

LINK_COLOR_HIGH = "red"
LINK_COLOR = "#ccc"
NODE_COLOR_HUB = "#0073e6"
NODE_COLOR = "#b3d9ff"
LABEL_COLOR = "black"
BACKGROUND_COLOR = "white"

# ---------- LAYOUT ENGINE ----------
LAYOUT_ITERATIONS = 300
LAYOUT_THRESHOLD = 1e-3        # stop once the step length falls below this fraction of k
LAYOUT_COOLING = 0.9           # step shrinks by this factor when the force energy stops falling
LAYOUT_GRAVITY = 0.5
LAYOUT_BLOCK_SIZE = 512        # rows per repulsion block
LAYOUT_EXACT_MAX_NODES = 1000  # above this, repulsion is approximated on a grid
LAYOUT_GRID_CELLS = 4          # grid cells per sqrt(n)
PROGRESS_EVERY = 10            # iterations between progress messages

# ---------- COORDINATOR ----------
LAYOUT_TIMEOUT_SECONDS = 60.0
POLL_INTERVAL_MS = 250

# ---------- CURSOR AFFORDANCE ----------
CURSOR_BUSY = "not-allowed"
CURSOR_IDLE = "grab"

# ---------- SERVER ----------
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8050
SAMPLE_HOSTS = 120
SAMPLE_FLOWS = 400
