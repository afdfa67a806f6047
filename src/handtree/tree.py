from __future__ import annotations

import math
from typing import Tuple

from .surface import Surface
from .types import TreeFrameState
from .utils import clamp


# --- Tuning knobs ---
MAX_DEPTH = 9
TRUNK_BOTTOM_OFFSET = 100  # px from the bottom edge to the trunk base
TRUNK_LENGTH_MIN = 80.0
TRUNK_LENGTH_GAIN = 120.0
TRUNK_WIDTH_MIN = 12.0
TRUNK_WIDTH_GAIN = 8.0
CHILD_WIDTH_FACTOR = 0.7

LEAF_THRESHOLD = 0.3
LEAF_RGB: Tuple[int, int, int] = (132, 204, 22)  # lime
GLOW_RGB: Tuple[int, int, int] = (56, 189, 248)  # sky
GLOW_ALPHA = 0.1


def frame_state(openness: float, now_ms: float) -> TreeFrameState:
    """Derive the per-frame tree parameters. `openness` is clamped to 0..1."""

    o = clamp(float(openness))
    leaf_alpha = (o - LEAF_THRESHOLD) * 0.8 if o > LEAF_THRESHOLD else 0.0
    return TreeFrameState(
        openness=o,
        now_ms=float(now_ms),
        trunk_length=TRUNK_LENGTH_MIN + o * TRUNK_LENGTH_GAIN,
        trunk_width=TRUNK_WIDTH_MIN + o * TRUNK_WIDTH_GAIN,
        growth_factor=0.75 + o * 0.1,
        spread_deg=15.0 + o * 25.0,
        sway_amplitude_deg=2.0 + o * 3.0,
        # Bluish when closed, greener and brighter when open.
        stroke_rgb=(
            int(math.floor(30 + (1 - o) * 50)),
            int(math.floor(150 + o * 105)),
            int(math.floor(200 + o * 55)),
        ),
        leaf_radius=4.0 + o * 6.0,
        leaf_alpha=leaf_alpha,
        glow_radius=200.0 + o * 100.0,
    )


def trunk_origin(width: int, height: int) -> Tuple[float, float]:
    return (width / 2.0, float(height - TRUNK_BOTTOM_OFFSET))


class TreeRenderer:
    """
    Recursive fractal tree driven by hand openness.

    Every call to `render` is a pure function of (surface size, openness, now_ms):
    no branch structure is kept between frames. Each branch is drawn in its own
    rotated frame (canvas-style save/translate/rotate/restore), with the tip at
    local (0, -length).
    """

    def __init__(self, max_depth: int = MAX_DEPTH) -> None:
        if max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {max_depth}")
        self.max_depth = int(max_depth)

    def segment_count(self) -> int:
        """Segments in a full tree: one trunk doubling at every level."""
        return 2 ** (self.max_depth + 1) - 1

    def render(self, surface: Surface, openness: float, now_ms: float) -> TreeFrameState:
        state = frame_state(openness, now_ms)
        x, y = trunk_origin(surface.width, surface.height)

        self.draw_glow(surface, state, x, y)
        surface.save()
        try:
            self._branch(surface, state, x, y, state.trunk_length, 0.0, state.trunk_width, 0)
        finally:
            surface.restore()
        return state

    def draw_glow(self, surface: Surface, state: TreeFrameState, x: float, y: float) -> None:
        r, g, b = GLOW_RGB
        surface.fill_radial_gradient(
            (x, y),
            0.0,
            state.glow_radius,
            [(0.0, (r, g, b, GLOW_ALPHA)), (1.0, (r, g, b, 0.0))],
        )

    def _branch(
        self,
        surface: Surface,
        state: TreeFrameState,
        x: float,
        y: float,
        length: float,
        angle_deg: float,
        width: float,
        depth: int,
    ) -> None:
        surface.save()
        try:
            surface.translate(x, y)

            # Wind: phase offset per depth keeps the levels out of sync.
            sway = math.sin(state.now_ms / 1000.0 + depth) * state.sway_amplitude_deg
            surface.rotate(math.radians(angle_deg + sway))

            r, g, b = state.stroke_rgb
            surface.stroke_line((0.0, 0.0), (0.0, -length), width, (r, g, b, 0.4 + depth * 0.05))

            if depth < self.max_depth:
                child_len = length * state.growth_factor
                child_width = width * CHILD_WIDTH_FACTOR
                self._branch(surface, state, 0.0, -length, child_len, state.spread_deg, child_width, depth + 1)
                self._branch(surface, state, 0.0, -length, child_len, -state.spread_deg, child_width, depth + 1)
            elif state.has_leaves:
                lr, lg, lb = LEAF_RGB
                surface.fill_circle((0.0, -length), state.leaf_radius, (lr, lg, lb, state.leaf_alpha))
        finally:
            surface.restore()
