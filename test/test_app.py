"""Lifecycle tests for the app controller, with camera and window faked out."""

from __future__ import annotations

import threading
import time
from types import SimpleNamespace

import numpy as np
import pytest

import handtree.app as app_mod
from handtree.app import HandTreeApp
from handtree.config import AppConfig
from handtree.scheduler import Viewport
from handtree.surface import Surface
from handtree.types import HandLandmark, HandPosition


class FakeViewport(Viewport):
    def __init__(self, stop_after: int = 2) -> None:
        self.stop_after = stop_after
        self.frames: list[np.ndarray] = []
        self.closed = False

    def size(self) -> tuple[int, int]:
        return (320, 240)

    def present(self, surface: Surface) -> bool:
        self.frames.append(surface.image.copy())
        return len(self.frames) < self.stop_after

    def close(self) -> None:
        self.closed = True


class FakeCapture:
    """A camera that has nothing to deliver: read() fails straight away."""

    def __init__(self) -> None:
        self.released = False

    def release(self) -> None:
        self.released = True

    def read(self):
        return False, None


class GatedCapture(FakeCapture):
    """Blocks in read() until `gate` is set, then reports end of stream."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = threading.Event()

    def read(self):
        self.gate.wait(5.0)
        return False, None


class LiveCapture(FakeCapture):
    def read(self):
        time.sleep(0.005)
        return True, np.zeros((48, 64, 3), dtype=np.uint8)


class FakeDetector:
    instances: list["FakeDetector"] = []

    def __init__(self, **kwargs) -> None:
        self.closed = False
        FakeDetector.instances.append(self)

    def detect(self, frame):
        return None

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeDetector":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _open_hand() -> HandPosition:
    pts = [(0.5, 0.9)] * 21
    for i, (dx, dy) in zip((1, 5, 9, 13, 17), [(-0.1, 0.0), (-0.05, -0.1), (0.0, -0.1), (0.05, -0.1), (0.1, 0.0)]):
        pts[i] = (0.5 + dx, 0.9 + dy)
    for i, (dx, dy) in zip((4, 8, 12, 16, 20), [(-0.3, 0.0), (-0.15, -0.3), (0.0, -0.3), (0.15, -0.3), (0.3, 0.0)]):
        pts[i] = (0.5 + dx, 0.9 + dy)
    lms = [HandLandmark(idx=i, x_norm=x, y_norm=y, z_norm=0.0, x_px=0, y_px=0) for i, (x, y) in enumerate(pts)]
    return HandPosition(handedness_label="Right", handedness_score=0.9, landmarks=lms, bbox_px=(0, 0, 0, 0))


def _wait_for_capture_to_end(app: HandTreeApp, timeout_s: float = 5.0) -> None:
    deadline = time.monotonic() + timeout_s
    while app.capture is not None and app.capture.alive and time.monotonic() < deadline:
        time.sleep(0.01)


# The dim loading overlay darkens the trunk just above its base.
TRUNK_PIXEL = (240 - 110, 160)


def test_tracking_failure_is_reported_and_rendering_continues(monkeypatch, caplog) -> None:
    def no_camera(*args, **kwargs):
        raise RuntimeError("Could not open camera index 0.")

    monkeypatch.setattr(app_mod, "open_camera", no_camera)
    viewport = FakeViewport(stop_after=3)
    app = HandTreeApp(AppConfig(target_fps=0), viewport=viewport)

    with caplog.at_level("ERROR", logger="handtree.app"):
        frames = app.run()

    assert frames == 2
    assert len(viewport.frames) == 3
    assert isinstance(app.tracking_error, RuntimeError)
    assert len([r for r in caplog.records if r.levelname == "ERROR"]) == 1
    assert app.openness == 0.0
    assert viewport.closed
    assert not app.started


def test_partial_tracking_setup_is_released(monkeypatch) -> None:
    cap = FakeCapture()

    def broken_detector(**kwargs):
        raise RuntimeError("Could not initialize MediaPipe Hands.")

    monkeypatch.setattr(app_mod, "open_camera", lambda *a, **k: cap)
    monkeypatch.setattr(app_mod, "HandLandmarkDetector", broken_detector)

    app = HandTreeApp(AppConfig(target_fps=0), viewport=FakeViewport())
    app.start()
    assert cap.released
    assert app.capture is None
    app.stop()


def test_stop_releases_camera_and_tracker(monkeypatch) -> None:
    cap = GatedCapture()
    FakeDetector.instances.clear()
    monkeypatch.setattr(app_mod, "open_camera", lambda *a, **k: cap)
    monkeypatch.setattr(app_mod, "HandLandmarkDetector", FakeDetector)

    viewport = FakeViewport()
    with HandTreeApp(AppConfig(target_fps=0), viewport=viewport) as app:
        assert app.started
        assert app.tracking_error is None
        assert app.capture is not None
        assert not cap.released
        # The stream ends only after stop() has been requested.
        threading.Timer(0.05, cap.gate.set).start()

    assert cap.released
    assert FakeDetector.instances[0].closed
    assert viewport.closed
    assert app.capture is None
    assert app.scheduler is None
    assert app.tracking_error is None


def test_camera_left_open_while_capture_thread_is_stuck(monkeypatch, caplog) -> None:
    """A read() that outlives the stop timeout must not race cap.release()."""
    cap = GatedCapture()
    monkeypatch.setattr(app_mod, "open_camera", lambda *a, **k: cap)
    monkeypatch.setattr(app_mod, "HandLandmarkDetector", FakeDetector)

    app = HandTreeApp(AppConfig(target_fps=0), viewport=FakeViewport())
    app.start()
    capture = app.capture
    assert capture is not None
    capture.stop_timeout_s = 0.05

    with caplog.at_level("WARNING", logger="handtree.app"):
        app.stop()

    assert not cap.released
    assert capture.alive
    assert any("leaving the camera open" in r.getMessage() for r in caplog.records)

    cap.gate.set()
    capture.stop()
    assert not capture.alive


def test_camera_ending_mid_run_replaces_loading_overlay(monkeypatch, caplog) -> None:
    """A dead camera stream is reported once and the loading overlay goes away."""
    cap = FakeCapture()
    monkeypatch.setattr(app_mod, "open_camera", lambda *a, **k: cap)
    monkeypatch.setattr(app_mod, "HandLandmarkDetector", FakeDetector)

    viewport = FakeViewport(stop_after=10)
    app = HandTreeApp(AppConfig(target_fps=0, show_preview=False), viewport=viewport)
    with caplog.at_level("ERROR", logger="handtree.app"):
        app.start()
        try:
            _wait_for_capture_to_end(app)
            assert app.scheduler is not None
            app.scheduler.tick()
            stopped = viewport.frames[-1]
            error = app.tracking_error

            # Same frame with the error cleared falls back to the loading overlay.
            app.tracking_error = None
            app.scheduler.tick()
            loading = viewport.frames[-1]
        finally:
            app.stop()

    assert isinstance(error, RuntimeError)
    assert not app.tracking_ready
    app_errors = [r for r in caplog.records if r.name == "handtree.app" and r.levelname == "ERROR"]
    assert len(app_errors) == 1
    y, x = TRUNK_PIXEL
    assert int(stopped[y, x].sum()) > int(loading[y, x].sum())
    assert cap.released


def test_detector_failure_mid_run_is_reported(monkeypatch) -> None:
    class BrokenDetector(FakeDetector):
        def detect(self, frame):
            raise ValueError("bad frame")

    monkeypatch.setattr(app_mod, "open_camera", lambda *a, **k: LiveCapture())
    monkeypatch.setattr(app_mod, "HandLandmarkDetector", BrokenDetector)

    app = HandTreeApp(AppConfig(target_fps=0), viewport=FakeViewport())
    app.start()
    try:
        _wait_for_capture_to_end(app)
        assert isinstance(app.tracking_error, ValueError)
        assert app.openness == 0.0
    finally:
        app.stop()


def test_run_without_scheduler_raises(monkeypatch) -> None:
    app = HandTreeApp(AppConfig(target_fps=0), viewport=FakeViewport())
    monkeypatch.setattr(app, "start", lambda: None)

    with pytest.raises(RuntimeError, match="frame scheduler"):
        app.run()


def test_landmark_callback_drives_openness() -> None:
    app = HandTreeApp(AppConfig(), viewport=FakeViewport())
    assert not app.tracking_ready

    app.on_landmarks(None)
    assert app.tracking_ready
    assert app.openness == 0.0

    app.on_landmarks(_open_hand())
    assert app.openness == pytest.approx(0.2)


def test_loading_overlay_until_first_result(monkeypatch) -> None:
    cap = GatedCapture()
    monkeypatch.setattr(app_mod, "open_camera", lambda *a, **k: cap)
    monkeypatch.setattr(app_mod, "HandLandmarkDetector", FakeDetector)

    viewport = FakeViewport(stop_after=1)
    app = HandTreeApp(AppConfig(target_fps=0, show_preview=False), viewport=viewport)
    app.start()
    try:
        assert app.scheduler is not None
        app.scheduler.tick()
        loading = viewport.frames[-1]

        app.on_landmarks(None)
        app.scheduler.tick()
        ready = viewport.frames[-1]
    finally:
        threading.Timer(0.05, cap.gate.set).start()
        app.stop()

    y, x = TRUNK_PIXEL
    assert int(ready[y, x].sum()) > int(loading[y, x].sum())
    assert app.tracking_error is None


def test_preview_inset_is_drawn() -> None:
    app = HandTreeApp(AppConfig(target_fps=0), viewport=FakeViewport())
    app.capture = SimpleNamespace(latest_preview=lambda: np.full((480, 640, 3), 255, dtype=np.uint8))
    app._first_result.set()

    frame = np.zeros((300, 400, 3), dtype=np.uint8)
    app._draw_overlays(SimpleNamespace(image=frame), 0.0)

    # Inset spans x in [180, 380), y in [20, 170).
    assert int(frame[100, 300].min()) >= 200
    assert int(frame[250, 300].sum()) == 0
