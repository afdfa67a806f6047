from __future__ import annotations

import math
from typing import List, Sequence, Tuple

import cv2
import numpy as np

from .types import RGBA
from .utils import clamp


Vec2 = Tuple[float, float]
GradientStop = Tuple[float, RGBA]  # (offset 0..1, color)

# Background behind the tree (dark slate).
BACKGROUND_RGB: Tuple[int, int, int] = (15, 23, 42)

# cv2 sub-pixel precision: coordinates are passed as fixed point with 4 fractional bits.
_SHIFT = 4
_ONE = 1 << _SHIFT


class SurfaceError(RuntimeError):
    """The drawing surface could not be (re)allocated."""


class Surface:
    """
    2D immediate-mode drawing surface with a canvas-style transform stack.

    Points handed to the drawing primitives are in the current local frame; `translate`
    and `rotate` compose onto the current transform, `save`/`restore` push and pop it.
    Subclasses only implement the device-space primitives.
    """

    def __init__(self, width: int, height: int) -> None:
        self._width = 0
        self._height = 0
        self._matrix = np.eye(3)
        self._stack: List[np.ndarray] = []
        self.resize(width, height)

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def size(self) -> Tuple[int, int]:
        return (self._width, self._height)

    def resize(self, width: int, height: int) -> None:
        width = int(width)
        height = int(height)
        if width <= 0 or height <= 0:
            raise SurfaceError(f"Cannot allocate a {width}x{height} drawing surface.")
        self._allocate(width, height)
        self._width = width
        self._height = height
        self.reset_transform()

    # --- transform stack ---

    def reset_transform(self) -> None:
        self._matrix = np.eye(3)
        self._stack.clear()

    def save(self) -> None:
        self._stack.append(self._matrix.copy())

    def restore(self) -> None:
        if self._stack:
            self._matrix = self._stack.pop()

    def translate(self, dx: float, dy: float) -> None:
        t = np.array([[1.0, 0.0, dx], [0.0, 1.0, dy], [0.0, 0.0, 1.0]])
        self._matrix = self._matrix @ t

    def rotate(self, radians: float) -> None:
        c = math.cos(radians)
        s = math.sin(radians)
        r = np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])
        self._matrix = self._matrix @ r

    def to_device(self, x: float, y: float) -> Vec2:
        m = self._matrix
        return (
            float(m[0, 0] * x + m[0, 1] * y + m[0, 2]),
            float(m[1, 0] * x + m[1, 1] * y + m[1, 2]),
        )

    # --- drawing ---

    def stroke_line(self, p0: Vec2, p1: Vec2, width: float, color: RGBA) -> None:
        self._line(self.to_device(*p0), self.to_device(*p1), float(width), color)

    def fill_circle(self, center: Vec2, radius: float, color: RGBA) -> None:
        # Translation + rotation only, so radii are unaffected by the transform.
        self._circle(self.to_device(*center), float(radius), color)

    def fill_radial_gradient(self, center: Vec2, r0: float, r1: float, stops: Sequence[GradientStop]) -> None:
        if not stops:
            return
        self._radial(self.to_device(*center), float(r0), float(r1), list(stops))

    def clear(self) -> None:
        raise NotImplementedError

    def _allocate(self, width: int, height: int) -> None:
        raise NotImplementedError

    def _line(self, p0: Vec2, p1: Vec2, width: float, color: RGBA) -> None:
        raise NotImplementedError

    def _circle(self, center: Vec2, radius: float, color: RGBA) -> None:
        raise NotImplementedError

    def _radial(self, center: Vec2, r0: float, r1: float, stops: List[GradientStop]) -> None:
        raise NotImplementedError


def _bgr(color: RGBA) -> Tuple[int, int, int]:
    r, g, b = color[0], color[1], color[2]
    return (int(b), int(g), int(r))


def _fixed(p: Vec2) -> Tuple[int, int]:
    return (int(round(p[0] * _ONE)), int(round(p[1] * _ONE)))


class Canvas(Surface):
    """
    Raster surface backed by a BGR uint8 image (OpenCV layout).

    Translucent primitives are drawn onto a copy of the affected region and
    alpha-blended back, so only the pixels near the primitive are touched.
    """

    def __init__(self, width: int, height: int, background_rgb: Tuple[int, int, int] = BACKGROUND_RGB) -> None:
        self._image = np.zeros((1, 1, 3), dtype=np.uint8)
        self.background_rgb = background_rgb
        super().__init__(width, height)

    @property
    def image(self) -> np.ndarray:
        return self._image

    def _allocate(self, width: int, height: int) -> None:
        try:
            image = np.empty((height, width, 3), dtype=np.uint8)
        except (MemoryError, ValueError) as e:
            raise SurfaceError(f"Cannot allocate a {width}x{height} drawing surface.") from e
        image[:] = _bgr((*self.background_rgb, 1.0))
        self._image = image

    def clear(self) -> None:
        self._image[:] = _bgr((*self.background_rgb, 1.0))

    def _region(self, x0: float, y0: float, x1: float, y1: float) -> Tuple[int, int, int, int]:
        h, w = self._image.shape[:2]
        return (
            max(0, int(math.floor(x0))),
            max(0, int(math.floor(y0))),
            min(w, int(math.ceil(x1)) + 1),
            min(h, int(math.ceil(y1)) + 1),
        )

    def _blend(self, rect: Tuple[int, int, int, int], alpha: float, draw) -> None:
        """Run `draw(roi, (ox, oy))` on the region and alpha-blend the result back."""
        x0, y0, x1, y1 = rect
        if x1 <= x0 or y1 <= y0 or alpha <= 0.0:
            return
        roi = self._image[y0:y1, x0:x1]
        if alpha >= 1.0:
            draw(roi, (x0, y0))
            return
        overlay = roi.copy()
        draw(overlay, (x0, y0))
        cv2.addWeighted(overlay, float(alpha), roi, float(1.0 - alpha), 0.0, dst=roi)

    def _line(self, p0: Vec2, p1: Vec2, width: float, color: RGBA) -> None:
        thickness = max(1, int(round(width)))
        pad = thickness / 2.0 + 2.0
        rect = self._region(
            min(p0[0], p1[0]) - pad,
            min(p0[1], p1[1]) - pad,
            max(p0[0], p1[0]) + pad,
            max(p0[1], p1[1]) + pad,
        )

        def draw(img: np.ndarray, origin: Tuple[int, int]) -> None:
            a = _fixed((p0[0] - origin[0], p0[1] - origin[1]))
            b = _fixed((p1[0] - origin[0], p1[1] - origin[1]))
            cv2.line(img, a, b, _bgr(color), thickness, cv2.LINE_AA, _SHIFT)

        self._blend(rect, clamp(color[3]), draw)

    def _circle(self, center: Vec2, radius: float, color: RGBA) -> None:
        if radius <= 0.0:
            return
        cx, cy = center
        rect = self._region(cx - radius - 1, cy - radius - 1, cx + radius + 1, cy + radius + 1)

        def draw(img: np.ndarray, origin: Tuple[int, int]) -> None:
            c = _fixed((cx - origin[0], cy - origin[1]))
            cv2.circle(img, c, int(round(radius * _ONE)), _bgr(color), -1, cv2.LINE_AA, _SHIFT)

        self._blend(rect, clamp(color[3]), draw)

    def _radial(self, center: Vec2, r0: float, r1: float, stops: List[GradientStop]) -> None:
        stops = sorted(stops, key=lambda s: s[0])
        cx, cy = center
        if stops[-1][1][3] > 0.0:
            # The outermost color extends past r1, so the whole image is affected.
            rect = (0, 0, self._image.shape[1], self._image.shape[0])
        else:
            rect = self._region(cx - r1, cy - r1, cx + r1, cy + r1)
        x0, y0, x1, y1 = rect
        if x1 <= x0 or y1 <= y0:
            return

        ys, xs = np.mgrid[y0:y1, x0:x1].astype(np.float32)
        d = np.hypot(xs - cx, ys - cy)
        span = max(1e-6, r1 - r0)
        t = np.clip((d - r0) / span, 0.0, 1.0)

        offsets = [float(s[0]) for s in stops]
        alpha = np.interp(t, offsets, [clamp(s[1][3]) for s in stops])[..., None]
        bgr = np.stack(
            [np.interp(t, offsets, [float(s[1][ch]) for s in stops]) for ch in (2, 1, 0)],
            axis=-1,
        )

        roi = self._image[y0:y1, x0:x1]
        blended = roi.astype(np.float32) * (1.0 - alpha) + bgr * alpha
        roi[:] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)


def _r(v: float) -> float:
    return round(float(v), 6)


class CommandRecorder(Surface):
    """
    Surface that records draw commands in device coordinates instead of rasterizing.

    `clear()` discards everything recorded so far, mirroring what it does to pixels.
    """

    def __init__(self, width: int, height: int) -> None:
        self.commands: List[tuple] = []
        super().__init__(width, height)

    def _allocate(self, width: int, height: int) -> None:
        self.commands = []

    def clear(self) -> None:
        self.commands = [("clear", self.width, self.height)]

    def count(self, op: str) -> int:
        return sum(1 for c in self.commands if c[0] == op)

    def of(self, op: str) -> List[tuple]:
        return [c for c in self.commands if c[0] == op]

    def _line(self, p0: Vec2, p1: Vec2, width: float, color: RGBA) -> None:
        self.commands.append(
            ("line", _r(p0[0]), _r(p0[1]), _r(p1[0]), _r(p1[1]), _r(width), tuple(_r(c) for c in color))
        )

    def _circle(self, center: Vec2, radius: float, color: RGBA) -> None:
        self.commands.append(("circle", _r(center[0]), _r(center[1]), _r(radius), tuple(_r(c) for c in color)))

    def _radial(self, center: Vec2, r0: float, r1: float, stops: List[GradientStop]) -> None:
        frozen = tuple((_r(o), tuple(_r(c) for c in col)) for o, col in stops)
        self.commands.append(("radial", _r(center[0]), _r(center[1]), _r(r0), _r(r1), frozen))
