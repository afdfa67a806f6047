from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union


Box2 = Tuple[int, int, int, int]  # (x_min, y_min, x_max, y_max)
RGBA = Tuple[float, float, float, float]  # r, g, b in 0..255, alpha in 0..1

NUM_LANDMARKS = 21
WRIST = 0
FINGER_TIPS: Tuple[int, ...] = (4, 8, 12, 16, 20)  # thumb, index, middle, ring, pinky
FINGER_BASES: Tuple[int, ...] = (1, 5, 9, 13, 17)  # thumb CMC, then MCPs


@dataclass(frozen=True)
class HandLandmark:
    """A single hand landmark with both normalized and pixel coordinates."""

    idx: int
    x_norm: float
    y_norm: float
    z_norm: float
    x_px: int
    y_px: int


@dataclass(frozen=True)
class HandPosition:
    """Landmarks of the single tracked hand for one captured frame."""

    handedness_label: Optional[str]  # "Left" / "Right" (may be None)
    handedness_score: Optional[float]
    landmarks: List[HandLandmark]  # length 21
    bbox_px: Box2


# Either detector output or bare (x, y[, z]) tuples in normalized image space.
LandmarkPoint = Union[HandLandmark, Sequence[float]]
LandmarkSet = Sequence[LandmarkPoint]


@dataclass(frozen=True)
class TreeFrameState:
    """Per-frame tree parameters derived from openness and the frame timestamp."""

    openness: float
    now_ms: float
    trunk_length: float
    trunk_width: float
    growth_factor: float
    spread_deg: float
    sway_amplitude_deg: float
    stroke_rgb: Tuple[int, int, int]
    leaf_radius: float
    leaf_alpha: float
    glow_radius: float

    @property
    def has_leaves(self) -> bool:
        return self.leaf_alpha > 0.0
