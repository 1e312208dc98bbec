from dataclasses import dataclass

from trafficflow.config import MAX_SCALE, MIN_SCALE, ZOOM_IN_FACTOR, ZOOM_OUT_FACTOR


def clamp_scale(scale):
    return max(MIN_SCALE, min(MAX_SCALE, scale))


@dataclass
class Viewport:
    """
    Affine model -> surface transform: surface = model * scale + translate.

    Only user input changes it; a new data generation leaves the view alone.
    """

    scale: float = 1.0
    translate_x: float = 0.0
    translate_y: float = 0.0

    @property
    def translate(self):
        return (self.translate_x, self.translate_y)

    def zoom(self, delta_y):
        """Wheel zoom: positive delta zooms out (x0.9), anything else zooms in (x1.1)."""
        factor = ZOOM_OUT_FACTOR if delta_y > 0 else ZOOM_IN_FACTOR
        before = self.scale
        self.scale = clamp_scale(self.scale * factor)
        return self.scale != before

    def pan(self, dx, dy):
        self.translate_x += dx
        self.translate_y += dy
        return bool(dx or dy)

    def set_translate(self, x, y):
        changed = (x, y) != self.translate
        self.translate_x, self.translate_y = x, y
        return changed

    def to_model_space(self, point):
        x, y = point
        return ((x - self.translate_x) / self.scale, (y - self.translate_y) / self.scale)

    def to_surface_space(self, point):
        x, y = point
        return (x * self.scale + self.translate_x, y * self.scale + self.translate_y)
