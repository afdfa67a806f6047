from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import cv2

from .model_assets import ensure_hand_landmarker_task
from .types import FINGER_TIPS, HandLandmark, HandPosition
from .utils import bbox_from_points, clamp_int


logger = logging.getLogger(__name__)

HAND_CONNECTIONS: List[Tuple[int, int]] = [
    # thumb
    (0, 1),
    (1, 2),
    (2, 3),
    (3, 4),
    # index
    (0, 5),
    (5, 6),
    (6, 7),
    (7, 8),
    # middle
    (5, 9),
    (9, 10),
    (10, 11),
    (11, 12),
    # ring
    (9, 13),
    (13, 14),
    (14, 15),
    (15, 16),
    # pinky
    (13, 17),
    (17, 18),
    (18, 19),
    (19, 20),
    # palm base
    (0, 17),
]

# Tasks VIDEO mode wants strictly increasing timestamps; assume ~30 fps capture.
_TASKS_FRAME_MS = 33


@dataclass(frozen=True)
class _SolutionsBackend:
    hands: object


@dataclass(frozen=True)
class _TasksBackend:
    mp: object
    landmarker: object


def _create_solutions_backend(
    model_complexity: int,
    min_detection_confidence: float,
    min_tracking_confidence: float,
) -> Optional[_SolutionsBackend]:
    import mediapipe as mp  # type: ignore

    if not hasattr(mp, "solutions"):
        return None
    hands = mp.solutions.hands.Hands(
        static_image_mode=False,
        max_num_hands=1,
        model_complexity=model_complexity,
        min_detection_confidence=min_detection_confidence,
        min_tracking_confidence=min_tracking_confidence,
    )
    return _SolutionsBackend(hands=hands)


def _create_tasks_backend(
    model_path: str,
    min_detection_confidence: float,
    min_tracking_confidence: float,
) -> _TasksBackend:
    """
    For MediaPipe builds without `mp.solutions`: the Tasks HandLandmarker, which needs
    a `.task` model on disk (downloaded on first use).
    """

    import mediapipe as mp  # type: ignore
    from mediapipe.tasks.python import BaseOptions  # type: ignore
    from mediapipe.tasks.python.vision import HandLandmarker, HandLandmarkerOptions, RunningMode  # type: ignore

    options = HandLandmarkerOptions(
        base_options=BaseOptions(model_asset_path=ensure_hand_landmarker_task(model_path)),
        running_mode=RunningMode.VIDEO,
        num_hands=1,
        min_hand_detection_confidence=min_detection_confidence,
        min_tracking_confidence=min_tracking_confidence,
    )
    return _TasksBackend(mp=mp, landmarker=HandLandmarker.create_from_options(options))


class HandLandmarkDetector:
    """
    Single-hand landmark detector on top of MediaPipe Hands.

    Input frames are **BGR** images (OpenCV default). `detect` returns the hand's
    21 landmarks, or None when no hand is in view.
    """

    def __init__(
        self,
        model_complexity: int = 1,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        tasks_model_path: str = "models/hand_landmarker.task",
    ) -> None:
        self._solutions = _create_solutions_backend(
            model_complexity=model_complexity,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )
        self._tasks: Optional[_TasksBackend] = None
        self._tasks_timestamp_ms = 0

        if self._solutions is None:
            logger.info("mediapipe has no `solutions` module; using the Tasks HandLandmarker")
            try:
                self._tasks = _create_tasks_backend(
                    model_path=tasks_model_path,
                    min_detection_confidence=min_detection_confidence,
                    min_tracking_confidence=min_tracking_confidence,
                )
            except ImportError as e:
                raise RuntimeError(
                    "Could not initialize MediaPipe Hands.\n"
                    "Your installed `mediapipe` package exposes neither `mp.solutions` nor the Tasks vision API.\n"
                    "Reinstall it with:\n"
                    "  pip install --upgrade mediapipe"
                ) from e

    def close(self) -> None:
        if self._solutions is not None:
            self._solutions.hands.close()
        if self._tasks is not None:
            self._tasks.landmarker.close()

    def __enter__(self) -> "HandLandmarkDetector":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def detect(self, frame_bgr) -> Optional[HandPosition]:
        h, w = frame_bgr.shape[:2]
        frame_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)

        if self._solutions is not None:
            results = self._solutions.hands.process(frame_rgb)
            if not results.multi_hand_landmarks:
                return None
            label, score = None, None
            handedness = results.multi_handedness or []
            if handedness and handedness[0].classification:
                c = handedness[0].classification[0]
                label = getattr(c, "label", None)
                score = float(getattr(c, "score", 0.0))
            return build_hand_position(results.multi_hand_landmarks[0].landmark, label, score, w, h)

        if self._tasks is None:
            return None

        mp = self._tasks.mp
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=frame_rgb)
        self._tasks_timestamp_ms += _TASKS_FRAME_MS
        result = self._tasks.landmarker.detect_for_video(mp_image, self._tasks_timestamp_ms)

        hand_landmarks_list = getattr(result, "hand_landmarks", None) or []
        if not hand_landmarks_list:
            return None
        label, score = None, None
        handedness = getattr(result, "handedness", None) or []
        if handedness and handedness[0]:
            cat0 = handedness[0][0]
            label = getattr(cat0, "category_name", None) or getattr(cat0, "display_name", None)
            score = float(getattr(cat0, "score", 0.0))
        return build_hand_position(hand_landmarks_list[0], label, score, w, h)


def build_hand_position(landmarks: Sequence, label: Optional[str], score: Optional[float], w: int, h: int) -> HandPosition:
    """Attach pixel coordinates (clamped to the frame) to normalized MediaPipe landmarks."""
    lms: List[HandLandmark] = []
    for idx, lm in enumerate(landmarks):
        lms.append(
            HandLandmark(
                idx=idx,
                x_norm=float(lm.x),
                y_norm=float(lm.y),
                z_norm=float(getattr(lm, "z", 0.0)),
                x_px=clamp_int(int(round(float(lm.x) * w)), 0, w - 1),
                y_px=clamp_int(int(round(float(lm.y) * h)), 0, h - 1),
            )
        )
    return HandPosition(
        handedness_label=label,
        handedness_score=score,
        landmarks=lms,
        bbox_px=bbox_from_points((lm.x_px, lm.y_px) for lm in lms),
    )


def mirror_hand(hand: HandPosition, *, width_px: int) -> HandPosition:
    """Mirror coordinates horizontally so they line up with a flipped (selfie) frame."""
    lms = [
        HandLandmark(
            idx=lm.idx,
            x_norm=1.0 - lm.x_norm,
            y_norm=lm.y_norm,
            z_norm=lm.z_norm,
            x_px=int(width_px - 1 - lm.x_px),
            y_px=lm.y_px,
        )
        for lm in hand.landmarks
    ]
    x0, y0, x1, y1 = hand.bbox_px
    return HandPosition(
        handedness_label=hand.handedness_label,
        handedness_score=hand.handedness_score,
        landmarks=lms,
        bbox_px=(int(width_px - 1 - x1), y0, int(width_px - 1 - x0), y1),
    )


def draw_hand(frame_bgr, hand: Optional[HandPosition], color=(248, 189, 56)):
    """Skeleton overlay: bones, joints, and highlighted fingertips."""
    if hand is None:
        return frame_bgr
    n = len(hand.landmarks)
    for a, b in HAND_CONNECTIONS:
        if a < n and b < n:
            p0 = (hand.landmarks[a].x_px, hand.landmarks[a].y_px)
            p1 = (hand.landmarks[b].x_px, hand.landmarks[b].y_px)
            cv2.line(frame_bgr, p0, p1, color, 2, cv2.LINE_AA)
    for lm in hand.landmarks:
        radius = 5 if lm.idx in FINGER_TIPS else 3
        cv2.circle(frame_bgr, (lm.x_px, lm.y_px), radius, (22, 204, 132), -1, lineType=cv2.LINE_AA)
    return frame_bgr
