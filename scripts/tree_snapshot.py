from __future__ import annotations

import argparse
import os
import sys
import time

import cv2

# Allow running without installing the package (repo-local usage).
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_ROOT = os.path.join(REPO_ROOT, "src")
if SRC_ROOT not in sys.path:
    sys.path.insert(0, SRC_ROOT)

from handtree.surface import Canvas  # noqa: E402
from handtree.tree import MAX_DEPTH, TreeRenderer  # noqa: E402


def main() -> int:
    ap = argparse.ArgumentParser(description="Render one tree frame to an image (no camera needed).")
    ap.add_argument("--out", required=True, help="Path to output image")
    ap.add_argument("--openness", type=float, default=1.0, help="Hand openness 0..1")
    ap.add_argument("--time-ms", type=float, default=None, help="Frame timestamp in ms (default: now)")
    ap.add_argument("--width", type=int, default=1280)
    ap.add_argument("--height", type=int, default=720)
    ap.add_argument("--max-depth", type=int, default=MAX_DEPTH)
    args = ap.parse_args()

    now_ms = args.time_ms if args.time_ms is not None else time.time() * 1000.0
    canvas = Canvas(args.width, args.height)
    state = TreeRenderer(max_depth=args.max_depth).render(canvas, args.openness, now_ms)

    ok = cv2.imwrite(args.out, canvas.image)
    if not ok:
        raise RuntimeError(f"Could not write output image: {args.out}")

    print(
        f"openness={state.openness:0.2f} trunk={state.trunk_length:0.1f} "
        f"spread={state.spread_deg:0.1f}deg leaves={'yes' if state.has_leaves else 'no'}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
