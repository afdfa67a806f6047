from __future__ import annotations

import argparse
import logging
import os
import sys

import cv2

# Allow running without installing the package (repo-local usage).
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_ROOT = os.path.join(REPO_ROOT, "src")
if SRC_ROOT not in sys.path:
    sys.path.insert(0, SRC_ROOT)

from handtree.camera import open_camera  # noqa: E402
from handtree.detector import HandLandmarkDetector, draw_hand, mirror_hand  # noqa: E402
from handtree.drawing import draw_text  # noqa: E402
from handtree.openness import MAX_RATIO, MIN_RATIO, SMOOTHING, OpennessEstimator, tip_base_ratio  # noqa: E402


def main() -> int:
    """Live readout of the tip/base ratio, for picking --min-ratio / --max-ratio on a new camera."""
    ap = argparse.ArgumentParser(description="Webcam openness calibration.")
    ap.add_argument("--camera", type=int, default=0, help="Camera index (default: 0)")
    ap.add_argument("--width", type=int, default=1280, help="Capture width (best effort)")
    ap.add_argument("--height", type=int, default=720, help="Capture height (best effort)")
    ap.add_argument("--min-ratio", type=float, default=MIN_RATIO)
    ap.add_argument("--max-ratio", type=float, default=MAX_RATIO)
    ap.add_argument("--smoothing", type=float, default=SMOOTHING)
    ap.add_argument(
        "--tasks-model",
        default="models/hand_landmarker.task",
        help="Path to MediaPipe Tasks model (auto-downloaded if missing)",
    )
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

    estimator = OpennessEstimator(min_ratio=args.min_ratio, max_ratio=args.max_ratio, smoothing=args.smoothing)
    cap = open_camera(args.camera, args.width, args.height)
    lo, hi = float("inf"), 0.0

    try:
        with HandLandmarkDetector(tasks_model_path=args.tasks_model) as detector:
            while True:
                ok, frame = cap.read()
                if not ok:
                    break

                hand = detector.detect(frame)
                frame = cv2.flip(frame, 1)
                if hand is not None:
                    hand = mirror_hand(hand, width_px=frame.shape[1])
                draw_hand(frame, hand)

                landmarks = hand.landmarks if hand is not None else None
                ratio = tip_base_ratio(landmarks)
                raw = estimator.raw_openness(landmarks)
                smoothed = estimator.update(landmarks)
                if ratio is not None:
                    lo, hi = min(lo, ratio), max(hi, ratio)

                lines = [
                    f"ratio: {ratio:0.2f}" if ratio is not None else "ratio: -",
                    f"raw: {raw:0.2f}" if raw is not None else "raw: -",
                    f"smoothed: {smoothed:0.2f}",
                    f"seen min/max ratio: {lo:0.2f} / {hi:0.2f}" if hi > 0 else "seen min/max ratio: -",
                    "fist, then open hand | q to quit",
                ]
                for i, text in enumerate(lines):
                    draw_text(frame, text, (12, 28 + i * 26), scale=0.7)

                cv2.imshow("handtree - openness calibration", frame)
                key = cv2.waitKey(1) & 0xFF
                if key in (ord("q"), 27):
                    break
    finally:
        cap.release()
        cv2.destroyAllWindows()

    if hi > 0:
        print(f"observed ratio range: {lo:0.3f} .. {hi:0.3f}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
