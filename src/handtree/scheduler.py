from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

import cv2

from .surface import Canvas, Surface
from .tree import TreeRenderer


logger = logging.getLogger(__name__)

Overlay = Callable[[Surface, float], None]


class Viewport:
    """Where frames end up. Reports its current size and shows finished frames."""

    def size(self) -> Tuple[int, int]:
        raise NotImplementedError

    def present(self, surface: Surface) -> bool:
        """Show the frame. Returns False when the viewer asked to stop."""
        raise NotImplementedError

    def close(self) -> None:
        pass


class OpenCVWindow(Viewport):
    """
    Resizable OpenCV HighGUI window.

    The window size is polled every frame; that is how resize events reach the
    scheduler. `q` / Esc or closing the window ends the loop.
    """

    def __init__(self, name: str = "handtree", size: Tuple[int, int] = (1280, 720), fullscreen: bool = False) -> None:
        self.name = name
        self._fallback = (int(size[0]), int(size[1]))
        cv2.namedWindow(self.name, cv2.WINDOW_NORMAL)
        if fullscreen:
            cv2.setWindowProperty(self.name, cv2.WND_PROP_FULLSCREEN, cv2.WINDOW_FULLSCREEN)
        else:
            cv2.resizeWindow(self.name, *self._fallback)

    def size(self) -> Tuple[int, int]:
        try:
            _, _, w, h = cv2.getWindowImageRect(self.name)
        except cv2.error:
            return self._fallback
        if w <= 0 or h <= 0:
            return self._fallback
        return (int(w), int(h))

    def present(self, surface: Surface) -> bool:
        image = getattr(surface, "image", None)
        if image is None:
            raise TypeError(f"{type(surface).__name__} has no image to present")
        cv2.imshow(self.name, image)
        key = cv2.waitKey(1) & 0xFF
        if key in (ord("q"), 27):
            return False
        # Window closed with the title bar button.
        if cv2.getWindowProperty(self.name, cv2.WND_PROP_VISIBLE) < 1:
            return False
        return True

    def close(self) -> None:
        try:
            cv2.destroyWindow(self.name)
        except cv2.error:
            pass


class FrameScheduler:
    """
    Drives the redraw loop: sync size, clear, draw tree, draw overlays, present.

    The openness is read fresh every frame from `openness()`, so the loop never
    waits on hand tracking; without new detections the last value is reused.
    """

    def __init__(
        self,
        renderer: TreeRenderer,
        viewport: Viewport,
        openness: Callable[[], float],
        *,
        surface: Optional[Surface] = None,
        clock: Callable[[], float] = time.time,
        target_fps: float = 60.0,
    ) -> None:
        """
        Args:
            renderer: Tree renderer invoked once per frame
            viewport: Frame sink reporting the current size
            openness: Returns the latest smoothed openness (0..1)
            surface: Drawing surface; a Canvas matching the viewport is created if omitted
            clock: Wall clock in seconds (frame timestamps are derived in ms)
            target_fps: Frame pacing; 0 disables pacing
        """
        self.renderer = renderer
        self.viewport = viewport
        self._openness = openness
        self._clock = clock
        self.target_fps = float(target_fps)

        if surface is None:
            surface = Canvas(*viewport.size())
        self.surface = surface

        self._overlays: List[Overlay] = []
        self._pending_size: Optional[Tuple[int, int]] = None
        self._cancel = threading.Event()
        self._running = False
        self._last_t: Optional[float] = None
        self.fps = 0.0
        self.frames = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def add_overlay(self, fn: Overlay) -> None:
        self._overlays.append(fn)

    def notify_resize(self, width: int, height: int) -> None:
        """Queue a new surface size; applied right before the next draw."""
        self._pending_size = (int(width), int(height))

    def cancel(self) -> None:
        self._cancel.set()

    def _sync_size(self) -> None:
        size = self._pending_size or self.viewport.size()
        self._pending_size = None
        if tuple(size) != self.surface.size:
            logger.debug("Resizing surface %dx%d -> %dx%d", *self.surface.size, *size)
            self.surface.resize(*size)

    def tick(self) -> bool:
        """Draw and present one frame. Returns False when the viewport wants to stop."""
        now = self._clock()
        now_ms = now * 1000.0

        if self._last_t is not None:
            dt = max(1e-6, now - self._last_t)
            inst = 1.0 / dt
            self.fps = 0.85 * self.fps + 0.15 * inst if self.fps > 0 else inst
        self._last_t = now

        self._sync_size()
        self.surface.clear()
        self.renderer.render(self.surface, self._openness(), now_ms)
        for overlay in self._overlays:
            overlay(self.surface, now_ms)

        self.frames += 1
        return self.viewport.present(self.surface)

    def run(self, max_frames: Optional[int] = None) -> int:
        """Loop until cancelled, the viewport stops, or `max_frames` frames were drawn."""
        self._running = True
        period = 1.0 / self.target_fps if self.target_fps > 0 else 0.0
        drawn = 0
        try:
            while not self._cancel.is_set():
                if max_frames is not None and drawn >= max_frames:
                    break
                t0 = time.perf_counter()
                if not self.tick():
                    logger.info("Viewport closed; stopping render loop")
                    break
                drawn += 1
                spare = period - (time.perf_counter() - t0)
                if spare > 0 and self._cancel.wait(spare):
                    break
        finally:
            self._running = False
        return drawn
