from __future__ import annotations

from typing import Tuple

import cv2
import numpy as np


def draw_text(frame, text: str, org: Tuple[int, int], color=(255, 255, 255), scale=0.6, thickness=2):
    cv2.putText(frame, text, org, cv2.FONT_HERSHEY_SIMPLEX, scale, (0, 0, 0), thickness + 2, cv2.LINE_AA)
    cv2.putText(frame, text, org, cv2.FONT_HERSHEY_SIMPLEX, scale, color, thickness, cv2.LINE_AA)
    return frame


def draw_text_centered(frame, text: str, cy: int, color=(255, 255, 255), scale=0.6, thickness=2):
    (tw, _), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, scale, thickness)
    x = max(0, (frame.shape[1] - tw) // 2)
    return draw_text(frame, text, (x, cy), color=color, scale=scale, thickness=thickness)


def draw_rect_alpha(frame, rect, color_bgr, alpha: float) -> None:
    """Alpha-blend a solid rect on top of the frame."""
    x0, y0, x1, y1 = rect
    x0 = max(0, int(x0))
    y0 = max(0, int(y0))
    x1 = min(frame.shape[1], int(x1))
    y1 = min(frame.shape[0], int(y1))
    if x1 <= x0 or y1 <= y0:
        return

    roi = frame[y0:y1, x0:x1]
    overlay = np.empty_like(roi)
    overlay[:, :] = color_bgr
    cv2.addWeighted(overlay, float(alpha), roi, float(1.0 - alpha), 0.0, dst=roi)


def blit(dst_bgr, src_bgr, x: int, y: int, alpha: float = 1.0) -> None:
    """Alpha-blend `src_bgr` onto `dst_bgr` at top-left (x,y), clipped to the destination."""
    if alpha <= 0.0:
        return
    h, w = src_bgr.shape[:2]
    H, W = dst_bgr.shape[:2]
    x0 = max(0, x)
    y0 = max(0, y)
    x1 = min(W, x + w)
    y1 = min(H, y + h)
    if x1 <= x0 or y1 <= y0:
        return
    roi = dst_bgr[y0:y1, x0:x1]
    src = src_bgr[y0 - y : y1 - y, x0 - x : x1 - x]
    if alpha >= 1.0:
        roi[:] = src
        return
    cv2.addWeighted(src, float(alpha), roi, float(1.0 - alpha), 0.0, dst=roi)


def draw_spinner(frame, center: Tuple[int, int], t_s: float, radius: int = 20, color=(248, 189, 56), thickness=4):
    """Track ring plus a quarter arc turning once per second."""
    track = tuple(int(c * 0.3) for c in color)
    cv2.circle(frame, center, radius, track, thickness, cv2.LINE_AA)
    start = (t_s % 1.0) * 360.0
    cv2.ellipse(frame, center, (radius, radius), 0.0, start, start + 90.0, color, thickness, cv2.LINE_AA)
    return frame
