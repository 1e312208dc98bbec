from dataclasses import dataclass

from trafficflow.config import CURSOR_BUSY, CURSOR_IDLE

PRIMARY_BUTTON = 0


@dataclass
class WheelEvent:
    delta_y: float
    default_prevented: bool = False

    def prevent_default(self):
        self.default_prevented = True


@dataclass
class PointerEvent:
    client_x: float
    client_y: float
    button: int = PRIMARY_BUTTON


@dataclass(frozen=True)
class SurfaceRect:
    left: float
    top: float
    width: float
    height: float


class InteractionController:
    """
    Turns raw wheel/pointer input into viewport changes and the hover cursor.

    Dragging is tracked by document-level handlers (on_document_move,
    on_pointer_up), so a pan keeps going while the pointer is outside the
    surface. Hover tracking (on_surface_move) only sees moves over the
    surface and is independent of drag state.
    """

    def __init__(self, viewport):
        self.viewport = viewport
        self.cursor = None
        self._drag_start = None
        self._drag_origin = None

    @property
    def dragging(self):
        return self._drag_start is not None

    def on_wheel(self, event: WheelEvent):
        event.prevent_default()
        return self.viewport.zoom(event.delta_y)

    def on_pointer_down(self, event: PointerEvent):
        if event.button != PRIMARY_BUTTON:
            return False
        self._drag_start = (event.client_x, event.client_y)
        self._drag_origin = self.viewport.translate
        return False

    def on_document_move(self, event: PointerEvent):
        if not self.dragging:
            return False
        start_x, start_y = self._drag_start
        origin_x, origin_y = self._drag_origin
        return self.viewport.set_translate(
            origin_x + (event.client_x - start_x),
            origin_y + (event.client_y - start_y),
        )

    def on_pointer_up(self, event=None):
        self._drag_start = None
        self._drag_origin = None
        return False

    def on_surface_move(self, event: PointerEvent, rect: SurfaceRect):
        self.cursor = (event.client_x - rect.left, event.client_y - rect.top)
        return False

    @staticmethod
    def cursor_style(loading):
        return CURSOR_BUSY if loading else CURSOR_IDLE
