from __future__ import annotations

import math
import threading
from typing import Optional, Tuple

from .types import FINGER_BASES, FINGER_TIPS, NUM_LANDMARKS, WRIST, HandLandmark, LandmarkPoint, LandmarkSet
from .utils import clamp, dist2d


# Calibration: tip/base distance ratio of a closed fist vs. a fully open hand.
# Tuned for a laptop webcam at arm's length.
MIN_RATIO = 1.2
MAX_RATIO = 2.4
# Weight of the newest sample in the exponential moving average.
SMOOTHING = 0.2


def _xy(point: LandmarkPoint) -> Tuple[float, float]:
    if isinstance(point, HandLandmark):
        return (point.x_norm, point.y_norm)
    return (float(point[0]), float(point[1]))


def tip_base_ratio(landmarks: Optional[LandmarkSet]) -> Optional[float]:
    """
    Mean wrist->fingertip distance divided by mean wrist->finger-base distance.

    Returns None for a missing hand, a landmark set that is not exactly 21 points,
    a degenerate hand whose bases all sit on the wrist, or non-finite coordinates.
    """

    if landmarks is None or len(landmarks) != NUM_LANDMARKS:
        return None
    try:
        pts = [_xy(p) for p in landmarks]
    except (TypeError, ValueError, IndexError):
        return None

    wrist = pts[WRIST]
    avg_tip = sum(dist2d(wrist, pts[i]) for i in FINGER_TIPS) / len(FINGER_TIPS)
    avg_base = sum(dist2d(wrist, pts[i]) for i in FINGER_BASES) / len(FINGER_BASES)
    if not (math.isfinite(avg_tip) and math.isfinite(avg_base)) or avg_base <= 0.0:
        return None
    return avg_tip / avg_base


class OpennessEstimator:
    """
    Turns a hand landmark set into a smoothed 0..1 openness signal.

    0.0 = closed fist, 1.0 = fully open hand. The signal keeps its last value while
    no hand is visible. Updates come from the capture thread and reads from the
    render loop, so the value sits behind a lock.
    """

    def __init__(
        self,
        initial: float = 0.0,
        *,
        min_ratio: float = MIN_RATIO,
        max_ratio: float = MAX_RATIO,
        smoothing: float = SMOOTHING,
    ) -> None:
        """
        Args:
            initial: Idle openness used until the first hand shows up
            min_ratio: Tip/base ratio mapped to 0.0
            max_ratio: Tip/base ratio mapped to 1.0
            smoothing: Weight of each new sample (0 < smoothing <= 1)
        """
        if max_ratio <= min_ratio:
            raise ValueError(f"max_ratio ({max_ratio}) must be greater than min_ratio ({min_ratio})")
        if not (0.0 < smoothing <= 1.0):
            raise ValueError(f"smoothing must be in (0, 1], got {smoothing}")

        self.min_ratio = float(min_ratio)
        self.max_ratio = float(max_ratio)
        self.smoothing = float(smoothing)
        self._initial = clamp(float(initial))

        self._lock = threading.Lock()
        self._value = self._initial
        self._update_count = 0

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    @property
    def update_count(self) -> int:
        with self._lock:
            return self._update_count

    def raw_openness(self, landmarks: Optional[LandmarkSet]) -> Optional[float]:
        ratio = tip_base_ratio(landmarks)
        if ratio is None:
            return None
        return clamp((ratio - self.min_ratio) / (self.max_ratio - self.min_ratio))

    def update(self, landmarks: Optional[LandmarkSet]) -> float:
        """Fold one detection result into the signal and return the new value."""
        raw = self.raw_openness(landmarks)
        with self._lock:
            if raw is None:
                return self._value
            a = self.smoothing
            self._value = clamp(self._value * (1.0 - a) + raw * a)
            self._update_count += 1
            return self._value

    def reset(self, value: Optional[float] = None) -> None:
        with self._lock:
            self._value = self._initial if value is None else clamp(float(value))
            self._update_count = 0

    def __call__(self) -> float:
        return self.value
