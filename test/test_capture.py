"""Tests for landmark conversion and the capture loop, without MediaPipe or a camera."""

from __future__ import annotations

import threading
import time
from types import SimpleNamespace

import numpy as np

from handtree.camera import CaptureThread
from handtree.detector import build_hand_position, draw_hand, mirror_hand
from handtree.model_assets import ensure_hand_landmarker_task


def _mp_landmarks(n: int = 21) -> list[SimpleNamespace]:
    return [SimpleNamespace(x=0.1 + i * 0.04, y=0.9 - i * 0.04, z=-0.01 * i) for i in range(n)]


def test_build_hand_position_adds_pixel_coordinates() -> None:
    hand = build_hand_position(_mp_landmarks(), "Right", 0.97, 200, 100)
    assert len(hand.landmarks) == 21
    first = hand.landmarks[0]
    assert (first.x_norm, first.y_norm) == (0.1, 0.9)
    assert (first.x_px, first.y_px) == (20, 90)
    assert hand.handedness_label == "Right"
    assert hand.bbox_px == (20, 10, 180, 90)


def test_pixel_coordinates_are_clamped_to_frame() -> None:
    lms = [SimpleNamespace(x=1.5, y=-0.2)] * 21
    hand = build_hand_position(lms, None, None, 64, 48)
    assert (hand.landmarks[0].x_px, hand.landmarks[0].y_px) == (63, 0)
    assert hand.landmarks[0].z_norm == 0.0


def test_mirror_hand_flips_x() -> None:
    hand = build_hand_position(_mp_landmarks(), "Left", 0.8, 200, 100)
    mirrored = mirror_hand(hand, width_px=200)
    assert mirrored.landmarks[0].x_norm == 1.0 - hand.landmarks[0].x_norm
    assert mirrored.landmarks[0].x_px == 199 - hand.landmarks[0].x_px
    assert mirrored.landmarks[0].y_px == hand.landmarks[0].y_px
    assert mirrored.handedness_label == "Left"
    assert mirrored.bbox_px == (19, 10, 179, 90)


def test_draw_hand_marks_frame() -> None:
    frame = np.zeros((100, 200, 3), dtype=np.uint8)
    draw_hand(frame, build_hand_position(_mp_landmarks(), None, None, 200, 100))
    assert frame.any()
    untouched = np.zeros((10, 10, 3), dtype=np.uint8)
    assert draw_hand(untouched, None) is untouched
    assert not untouched.any()


class _Detector:
    def __init__(self, result) -> None:
        self.result = result
        self.frames = 0

    def detect(self, frame):
        self.frames += 1
        return self.result


class _Camera:
    def __init__(self, frames: int) -> None:
        self.remaining = frames

    def read(self):
        if self.remaining <= 0:
            return False, None
        self.remaining -= 1
        frame = np.zeros((48, 64, 3), dtype=np.uint8)
        frame[:, :8] = 255  # left edge marker
        return True, frame


def test_process_reports_once_per_frame_and_mirrors_preview() -> None:
    seen = []
    hand = build_hand_position(_mp_landmarks(), "Right", 0.9, 64, 48)
    capture = CaptureThread(_Camera(0), _Detector(hand), seen.append, annotate=False)

    result = capture.process(_Camera(1).read()[1])

    assert len(seen) == 1
    assert seen[0] is result
    assert result.landmarks[0].x_norm == 1.0 - hand.landmarks[0].x_norm
    preview = capture.latest_preview()
    assert preview is not None
    assert preview[:, -1].min() == 255
    assert preview[:, 0].max() == 0


def _wait_until_done(capture: CaptureThread, timeout_s: float = 5.0) -> None:
    deadline = time.monotonic() + timeout_s
    while capture.alive and time.monotonic() < deadline:
        time.sleep(0.01)


def test_thread_delivers_none_when_no_hand_and_stops_at_end_of_stream() -> None:
    seen = []
    detector = _Detector(None)
    stopped = []
    capture = CaptureThread(_Camera(5), detector, seen.append, on_stopped=stopped.append)
    capture.start()
    _wait_until_done(capture)
    capture.stop()

    assert detector.frames == 5
    assert seen == [None] * 5
    assert isinstance(capture.error, RuntimeError)
    assert stopped == [capture.error]
    assert not capture.alive


def test_detector_errors_stop_tracking_only() -> None:
    class Broken:
        def detect(self, frame):
            raise ValueError("bad frame")

    seen = []
    stopped = []
    capture = CaptureThread(_Camera(3), Broken(), seen.append, on_stopped=stopped.append)
    capture.start()
    _wait_until_done(capture)
    capture.stop()

    assert isinstance(capture.error, ValueError)
    assert stopped == [capture.error]
    assert seen == []


class _GatedCamera:
    """Blocks in read() until released, like a stalled driver."""

    def __init__(self) -> None:
        self.gate = threading.Event()
        self.reading = threading.Event()

    def read(self):
        self.reading.set()
        self.gate.wait(5.0)
        return False, None


def test_requested_stop_does_not_report_a_failure() -> None:
    """A camera that ends after stop() is a clean shutdown, not a tracking error."""
    cam = _GatedCamera()
    stopped = []
    capture = CaptureThread(cam, _Detector(None), lambda hand: None, on_stopped=stopped.append)
    capture.start()
    assert cam.reading.wait(5.0)

    threading.Timer(0.05, cam.gate.set).start()
    capture.stop()

    assert not capture.alive
    assert capture.error is None
    assert stopped == []


def test_stop_timeout_keeps_thread_visible_as_alive() -> None:
    """If join() times out mid-read, `alive` must still say so."""
    cam = _GatedCamera()
    capture = CaptureThread(cam, _Detector(None), lambda hand: None)
    capture.start()
    assert cam.reading.wait(5.0)

    capture.stop(timeout_s=0.05)
    assert capture.alive

    cam.gate.set()
    capture.stop()
    assert not capture.alive


def test_existing_model_file_is_used_as_is(tmp_path) -> None:
    model = tmp_path / "hand_landmarker.task"
    model.write_bytes(b"model")
    assert ensure_hand_landmarker_task(str(model)) == str(model)
    assert model.read_bytes() == b"model"
