from __future__ import annotations

from dataclasses import replace
from typing import Optional, Tuple

import cv2
import numpy as np

from ..models import LandmarkFrame


# BlazePose indices: shoulders 11/12, elbows 13/14, wrists 15/16, hips 23/24,
# knees 25/26, ankles 27/28.
LINKS = [
    (11, 12),
    (11, 13),
    (13, 15),
    (12, 14),
    (14, 16),
    (23, 24),
    (11, 23),
    (12, 24),
    (23, 25),
    (25, 27),
    (24, 26),
    (26, 28),
]

_MIN_VISIBILITY = 0.5


def _px(x: float, y: float, w: int, h: int) -> Tuple[int, int]:
    return (int(x * w), int(y * h))


def mirror_landmarks(landmarks: LandmarkFrame) -> LandmarkFrame:
    """Flip x so landmarks detected on a raw frame line up with a mirrored preview."""
    return tuple(replace(kp, x=1.0 - kp.x) for kp in landmarks)


def draw_pose_overlay(
    frame: np.ndarray,
    landmarks: Optional[LandmarkFrame],
    colour: Tuple[int, int, int] = (0, 200, 0),
    min_visibility: float = _MIN_VISIBILITY,
) -> np.ndarray:
    out = frame.copy()
    if not landmarks:
        return out
    h, w = out.shape[:2]

    def visible(i: int) -> bool:
        return i < len(landmarks) and landmarks[i].visibility >= min_visibility

    for a, b in LINKS:
        if visible(a) and visible(b):
            pa, pb = landmarks[a], landmarks[b]
            cv2.line(out, _px(pa.x, pa.y, w, h), _px(pb.x, pb.y, w, h), colour, 3)

    for i, kp in enumerate(landmarks):
        if visible(i):
            cv2.circle(out, _px(kp.x, kp.y, w, h), 5, colour, -1)
    return out


def placeholder_frame(width: int, height: int, text: str) -> np.ndarray:
    out = np.full((int(height), int(width), 3), 241, dtype=np.uint8)
    (tw, th), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_TRIPLEX, 0.8, 1)
    org = (max(0, (int(width) - tw) // 2), (int(height) + th) // 2)
    cv2.putText(out, text, org, cv2.FONT_HERSHEY_TRIPLEX, 0.8, (60, 60, 60), 1, cv2.LINE_AA)
    return out
