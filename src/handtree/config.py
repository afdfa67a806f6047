"""Runtime configuration for the hand tree app."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Tuple

from .openness import MAX_RATIO, MIN_RATIO, SMOOTHING
from .tree import MAX_DEPTH


@dataclass(frozen=True)
class AppConfig:
    """Resolved settings for :class:`handtree.app.HandTreeApp`."""

    camera: int = 0
    capture_width: int = 640
    capture_height: int = 480
    mirror: bool = True
    tasks_model: str = "models/hand_landmarker.task"
    window_name: str = "Hand Gesture Tree"
    window_size: Tuple[int, int] = (1280, 720)
    fullscreen: bool = False
    target_fps: float = 60.0
    show_preview: bool = True
    show_hud: bool = False
    initial_openness: float = 0.0
    min_ratio: float = MIN_RATIO
    max_ratio: float = MAX_RATIO
    smoothing: float = SMOOTHING
    max_depth: int = MAX_DEPTH

    def __post_init__(self) -> None:
        if self.max_ratio <= self.min_ratio:
            raise ValueError(f"max_ratio ({self.max_ratio}) must be greater than min_ratio ({self.min_ratio})")
        if not (0.0 < self.smoothing <= 1.0):
            raise ValueError(f"smoothing must be in (0, 1], got {self.smoothing}")
        if self.max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {self.max_depth}")
        if self.target_fps < 0:
            raise ValueError(f"target_fps must be >= 0, got {self.target_fps}")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "AppConfig":
        return cls(
            camera=args.camera,
            capture_width=args.width,
            capture_height=args.height,
            mirror=not args.no_mirror,
            tasks_model=args.tasks_model,
            window_size=(args.window_width, args.window_height),
            fullscreen=args.fullscreen,
            target_fps=args.fps,
            show_preview=not args.no_preview,
            show_hud=args.hud,
            initial_openness=args.initial_openness,
            min_ratio=args.min_ratio,
            max_ratio=args.max_ratio,
            smoothing=args.smoothing,
            max_depth=args.max_depth,
        )


def add_arguments(ap: argparse.ArgumentParser) -> argparse.ArgumentParser:
    d = AppConfig()
    ap.add_argument("--camera", type=int, default=d.camera, help="Camera index (default: 0)")
    ap.add_argument("--width", type=int, default=d.capture_width, help="Capture width (best effort)")
    ap.add_argument("--height", type=int, default=d.capture_height, help="Capture height (best effort)")
    ap.add_argument(
        "--no-mirror",
        action="store_true",
        help="Disable horizontal mirroring (default is mirrored/selfie mode)",
    )
    ap.add_argument(
        "--tasks-model",
        default=d.tasks_model,
        help="Path to MediaPipe Tasks model (auto-downloaded if missing)",
    )
    ap.add_argument("--window-width", type=int, default=d.window_size[0])
    ap.add_argument("--window-height", type=int, default=d.window_size[1])
    ap.add_argument("--fullscreen", action="store_true")
    ap.add_argument("--fps", type=float, default=d.target_fps, help="Target frame rate (0 = unpaced)")
    ap.add_argument("--no-preview", action="store_true", help="Hide the camera preview inset")
    ap.add_argument("--hud", action="store_true", help="Show openness / fps readout")
    ap.add_argument("--initial-openness", type=float, default=d.initial_openness)
    ap.add_argument("--min-ratio", type=float, default=d.min_ratio, help="Tip/base ratio of a closed fist")
    ap.add_argument("--max-ratio", type=float, default=d.max_ratio, help="Tip/base ratio of an open hand")
    ap.add_argument("--smoothing", type=float, default=d.smoothing, help="EMA weight of each new sample")
    ap.add_argument("--max-depth", type=int, default=d.max_depth, help="Branching levels below the trunk")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap
