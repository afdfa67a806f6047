from __future__ import annotations

import contextlib
import logging
import threading
from typing import Optional

import cv2

from .camera import CaptureThread, open_camera
from .config import AppConfig
from .detector import HandLandmarkDetector
from .drawing import blit, draw_rect_alpha, draw_spinner, draw_text, draw_text_centered
from .openness import OpennessEstimator
from .scheduler import FrameScheduler, OpenCVWindow, Viewport
from .surface import Surface
from .tree import TreeRenderer
from .types import HandPosition


logger = logging.getLogger(__name__)

# Overlay look (BGR).
ACCENT_BGR = (248, 189, 56)
SLATE_BGR = (42, 23, 15)
PREVIEW_SIZE = (200, 150)
PREVIEW_MARGIN = 20
PREVIEW_ALPHA = 0.8

TITLE = "Hand Gesture Tree"
INSTRUCTIONS = "Open your hand to make the tree grow, close it to make it shrink."
LOADING_TEXT = "Initializing Camera & Hand Tracking..."


class HandTreeApp:
    """
    Owns everything the view needs: camera, tracker, capture thread, window and loop.

    `start()` acquires the resources, `stop()` releases them in reverse order.
    Hand tracking is optional at runtime: if the camera or MediaPipe cannot be set
    up the failure is logged once and the tree keeps rendering at the idle openness.
    """

    def __init__(self, config: Optional[AppConfig] = None, *, viewport: Optional[Viewport] = None) -> None:
        self.config = config or AppConfig()
        self.estimator = OpennessEstimator(
            self.config.initial_openness,
            min_ratio=self.config.min_ratio,
            max_ratio=self.config.max_ratio,
            smoothing=self.config.smoothing,
        )
        self.renderer = TreeRenderer(max_depth=self.config.max_depth)
        self._viewport = viewport

        self.scheduler: Optional[FrameScheduler] = None
        self.capture: Optional[CaptureThread] = None
        self.tracking_error: Optional[BaseException] = None
        self._first_result = threading.Event()
        self._resources: Optional[contextlib.ExitStack] = None

    @property
    def started(self) -> bool:
        return self._resources is not None

    @property
    def tracking_ready(self) -> bool:
        return self._first_result.is_set()

    @property
    def openness(self) -> float:
        return self.estimator.value

    def on_landmarks(self, hand: Optional[HandPosition]) -> None:
        """Capture thread callback: one call per processed camera frame."""
        self._first_result.set()
        self.estimator.update(hand.landmarks if hand is not None else None)

    # --- lifecycle ---

    def start(self) -> None:
        if self.started:
            return
        cfg = self.config
        with contextlib.ExitStack() as stack:
            viewport = self._viewport or OpenCVWindow(cfg.window_name, cfg.window_size, cfg.fullscreen)
            stack.callback(viewport.close)

            # Surface allocation errors propagate: no frames can be drawn without it.
            scheduler = FrameScheduler(
                self.renderer,
                viewport,
                self.estimator,
                target_fps=cfg.target_fps,
            )
            stack.callback(scheduler.cancel)
            scheduler.add_overlay(self._draw_overlays)

            self._start_tracking(stack)

            self.scheduler = scheduler
            self._resources = stack.pop_all()
        logger.info("Started (tracking: %s)", "off" if self.tracking_error else "on")

    def _start_tracking(self, stack: contextlib.ExitStack) -> None:
        cfg = self.config
        try:
            with contextlib.ExitStack() as tracking:
                cap = open_camera(cfg.camera, cfg.capture_width, cfg.capture_height)
                tracking.callback(self._release_camera, cap)
                detector = tracking.enter_context(HandLandmarkDetector(tasks_model_path=cfg.tasks_model))
                capture = CaptureThread(
                    cap,
                    detector,
                    self.on_landmarks,
                    on_stopped=self._on_tracking_stopped,
                    mirror=cfg.mirror,
                )
                tracking.enter_context(capture)
                stack.push(tracking.pop_all())
                self.capture = capture
        except (RuntimeError, ImportError, OSError, cv2.error) as e:
            self.tracking_error = e
            logger.error("Hand tracking unavailable, rendering without gesture control: %s", e)

    def _on_tracking_stopped(self, error: BaseException) -> None:
        # Called from the capture thread; the next overlay pass picks it up.
        self.tracking_error = error
        logger.error("Hand tracking stopped, rendering without gesture control: %s", error)

    def _release_camera(self, cap) -> None:
        if self.capture is not None and self.capture.alive:
            # The thread may still be blocked in read(); it is a daemon and dies with the process.
            logger.warning("Capture thread still running, leaving the camera open")
            return
        cap.release()

    def stop(self) -> None:
        if self._resources is None:
            return
        resources, self._resources = self._resources, None
        try:
            resources.close()
        finally:
            self.capture = None
            self.scheduler = None
        logger.info("Stopped")

    def run(self) -> int:
        """Start, loop until the window is closed, always release. Returns frames drawn."""
        self.start()
        try:
            if self.scheduler is None:
                raise RuntimeError("start() did not create a frame scheduler")
            return self.scheduler.run()
        finally:
            self.stop()

    def __enter__(self) -> "HandTreeApp":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # --- overlays ---

    def _draw_overlays(self, surface: Surface, now_ms: float) -> None:
        frame = getattr(surface, "image", None)
        if frame is None:
            return
        self._draw_titles(frame)
        if self.config.show_preview and self.capture is not None:
            preview = self.capture.latest_preview()
            if preview is not None:
                self._draw_preview(frame, preview)
        if self.config.show_hud:
            self._draw_hud(frame)
        if self.tracking_error is not None:
            draw_text(frame, "Hand tracking unavailable", (20, frame.shape[0] - 20), color=(120, 120, 255), scale=0.5, thickness=1)
        elif not self.tracking_ready:
            self._draw_loading(frame, now_ms)

    def _draw_titles(self, frame) -> None:
        draw_text(frame, TITLE, (20, 40), color=ACCENT_BGR, scale=1.0, thickness=2)
        draw_text(frame, INSTRUCTIONS, (20, 68), color=(220, 220, 220), scale=0.5, thickness=1)

    def _draw_preview(self, frame, preview) -> None:
        pw, ph = PREVIEW_SIZE
        thumb = cv2.resize(preview, (pw, ph), interpolation=cv2.INTER_AREA)
        x = frame.shape[1] - pw - PREVIEW_MARGIN
        y = PREVIEW_MARGIN
        blit(frame, thumb, x, y, alpha=PREVIEW_ALPHA)
        cv2.rectangle(frame, (x - 2, y - 2), (x + pw + 1, y + ph + 1), ACCENT_BGR, 2, cv2.LINE_AA)

    def _draw_hud(self, frame) -> None:
        fps = self.scheduler.fps if self.scheduler is not None else 0.0
        draw_text(frame, f"openness: {self.openness:0.2f} | fps: {fps:0.1f} | q/esc quit", (20, 96), scale=0.5, thickness=1)

    def _draw_loading(self, frame, now_ms: float) -> None:
        h, w = frame.shape[:2]
        draw_rect_alpha(frame, (0, 0, w, h), SLATE_BGR, 0.9)
        draw_spinner(frame, (w // 2, h // 2 - 20), now_ms / 1000.0, color=ACCENT_BGR)
        draw_text_centered(frame, LOADING_TEXT, h // 2 + 30, color=ACCENT_BGR, scale=0.6, thickness=1)
