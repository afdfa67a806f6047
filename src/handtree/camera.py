from __future__ import annotations

import logging
import platform
import threading
from typing import Callable, Optional

import cv2
import numpy as np

from .detector import HandLandmarkDetector, draw_hand, mirror_hand
from .types import HandPosition


logger = logging.getLogger(__name__)


LandmarkCallback = Callable[[Optional[HandPosition]], None]
StoppedCallback = Callable[[BaseException], None]

def open_camera(index: int = 0, width: int = 640, height: int = 480) -> cv2.VideoCapture:
    # On macOS, AVFoundation is the reliable backend and is also what triggers the
    # system camera permission prompt for the launching app.
    if platform.system() == "Darwin":
        cap = cv2.VideoCapture(index, cv2.CAP_AVFOUNDATION)
    else:
        cap = cv2.VideoCapture(index)

    if not cap.isOpened():
        cap.release()
        raise RuntimeError(
            f"Could not open camera index {index}.\n\n"
            "If you're on macOS and you saw 'not authorized to capture video', grant Camera access to the app\n"
            "you launched this from (Terminal / iTerm / your IDE) in:\n"
            "  System Settings -> Privacy & Security -> Camera\n"
        )

    cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
    return cap


class CaptureThread:
    """
    Background loop: grab a frame, detect the hand, report it.

    `on_landmarks` is called exactly once per captured frame, with the hand or None.
    Capture runs at the camera's pace, independent of the render loop. The latest
    (mirrored, annotated) frame is kept for the on-screen preview.
    If the loop ends on its own (camera gone, detector error) `on_stopped` is
    called once from the capture thread with the reason. It is not called for
    a requested `stop()`.
    """

    def __init__(
        self,
        cap: cv2.VideoCapture,
        detector: HandLandmarkDetector,
        on_landmarks: LandmarkCallback,
        *,
        on_stopped: Optional[StoppedCallback] = None,
        mirror: bool = True,
        annotate: bool = True,
        stop_timeout_s: float = 2.0,
    ) -> None:
        self._cap = cap
        self._detector = detector
        self._on_landmarks = on_landmarks
        self._on_stopped = on_stopped
        self.mirror = mirror
        self.annotate = annotate
        self.stop_timeout_s = stop_timeout_s

        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._preview: Optional[np.ndarray] = None
        self._thread: Optional[threading.Thread] = None
        self.error: Optional[BaseException] = None

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def latest_preview(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._preview

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="handtree-capture", daemon=True)
        self._thread.start()

    def stop(self, timeout_s: Optional[float] = None) -> None:
        """Ask the loop to end and wait for it. `alive` stays True if the wait times out."""
        self._stop.set()
        if self._thread is None:
            return
        timeout_s = self.stop_timeout_s if timeout_s is None else timeout_s
        self._thread.join(timeout=timeout_s)
        if self._thread.is_alive():
            # Still inside read() or detect(); keep the handle so callers can tell.
            logger.warning("Capture thread did not stop within %.1fs", timeout_s)
            return
        self._thread = None

    def process(self, frame: np.ndarray) -> Optional[HandPosition]:
        """Detect on one frame, publish the result and the preview image."""
        # Detect on the raw frame so handedness labels stay correct; mirror afterwards.
        hand = self._detector.detect(frame)
        if self.mirror:
            frame = cv2.flip(frame, 1)
            if hand is not None:
                hand = mirror_hand(hand, width_px=frame.shape[1])
        if self.annotate:
            draw_hand(frame, hand)

        with self._lock:
            self._preview = frame
        self._on_landmarks(hand)
        return hand

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                ok, frame = self._cap.read()
                if not ok:
                    if self._stop.is_set():
                        return
                    self.error = RuntimeError("Camera stopped delivering frames")
                    logger.warning("Camera stopped delivering frames; hand tracking paused")
                    break
                self.process(frame)
        except Exception as e:
            # Tracking dies alone; the renderer keeps the last openness.
            self.error = e
            logger.exception("Hand tracking failed")

        if self.error is not None and self._on_stopped is not None and not self._stop.is_set():
            self._on_stopped(self.error)

    def __enter__(self) -> "CaptureThread":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
