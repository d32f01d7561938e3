"""
OpenCV overlay for live plank feedback: skeleton, hint text,
confidence meter and hold timer.
"""

from typing import Optional, Tuple

import cv2
import numpy as np

import config
from hold_timer import format_duration
from plank_pose import LandmarkFrame, PlankResult, PoseLandmark

# BGR colors
COLOR_PASS = (0, 255, 0)
COLOR_FAIL = (0, 0, 255)
COLOR_WARN = (0, 255, 255)
COLOR_TEXT = (255, 255, 255)

POSE_CONNECTIONS = [
    # Torso
    (PoseLandmark.LEFT_SHOULDER, PoseLandmark.LEFT_HIP),
    (PoseLandmark.RIGHT_SHOULDER, PoseLandmark.RIGHT_HIP),
    # Arms
    (PoseLandmark.LEFT_SHOULDER, PoseLandmark.LEFT_ELBOW),
    (PoseLandmark.LEFT_ELBOW, PoseLandmark.LEFT_WRIST),
    (PoseLandmark.RIGHT_SHOULDER, PoseLandmark.RIGHT_ELBOW),
    (PoseLandmark.RIGHT_ELBOW, PoseLandmark.RIGHT_WRIST),
    # Legs
    (PoseLandmark.LEFT_HIP, PoseLandmark.LEFT_KNEE),
    (PoseLandmark.LEFT_KNEE, PoseLandmark.LEFT_ANKLE),
    (PoseLandmark.RIGHT_HIP, PoseLandmark.RIGHT_KNEE),
    (PoseLandmark.RIGHT_KNEE, PoseLandmark.RIGHT_ANKLE),
    # Head/neck
    (PoseLandmark.NOSE, PoseLandmark.LEFT_SHOULDER),
    (PoseLandmark.NOSE, PoseLandmark.RIGHT_SHOULDER),
]


def _to_pixel(lm, width: int, height: int) -> Tuple[int, int]:
    return int(lm.x * width), int(lm.y * height)


def draw_pose_skeleton(image: np.ndarray, frame: Optional[LandmarkFrame],
                       color=COLOR_PASS, min_visibility: float = config.SKELETON_VIS_THRESH) -> np.ndarray:
    """Draw connections and joints whose visibility exceeds min_visibility"""
    if frame is None:
        return image
    height, width = image.shape[:2]

    for start, end in POSE_CONNECTIONS:
        a, b = frame.get(start), frame.get(end)
        if a is None or b is None:
            continue
        if a.visibility > min_visibility and b.visibility > min_visibility:
            cv2.line(image, _to_pixel(a, width, height), _to_pixel(b, width, height), color, 3)

    for idx in PoseLandmark:
        lm = frame.get(idx)
        if lm is not None and lm.visibility > min_visibility:
            cv2.circle(image, _to_pixel(lm, width, height), 5, color, -1)
    return image


def confidence_color(confidence: float):
    if confidence >= 80:
        return COLOR_PASS
    if confidence >= 60:
        return COLOR_WARN
    return COLOR_FAIL


def draw_detection_feedback(image: np.ndarray, result: PlankResult) -> np.ndarray:
    """Feedback lines at the top, confidence meter at the bottom right"""
    height, width = image.shape[:2]
    scale = max(0.4, min(width, height) / 800)
    line_height = int(30 * scale) + 6
    padding = 15

    # Feedback panel
    panel_height = len(result.feedback) * line_height + padding * 2
    overlay = image.copy()
    cv2.rectangle(overlay, (padding, padding), (width - padding, padding + panel_height), (0, 0, 0), -1)
    cv2.addWeighted(overlay, 0.7, image, 0.3, 0, dst=image)

    for i, text in enumerate(result.feedback):
        color = COLOR_PASS if result.is_plank and i == 0 else COLOR_WARN
        y = padding * 2 + (i + 1) * line_height - 8
        cv2.putText(image, text, (padding * 2, y), cv2.FONT_HERSHEY_SIMPLEX, 0.7 * scale, color, 2)

    # Confidence meter
    meter_width = int(min(200, width * 0.3))
    meter_height = 20
    meter_x = width - meter_width - padding * 2
    meter_y = height - meter_height - padding * 3

    cv2.rectangle(image, (meter_x - 10, meter_y - 25), (meter_x + meter_width + 10, meter_y + meter_height + 10),
                  (0, 0, 0), -1)
    cv2.putText(image, "Detection:", (meter_x, meter_y - 8), cv2.FONT_HERSHEY_SIMPLEX, 0.5, COLOR_TEXT, 1)
    cv2.rectangle(image, (meter_x, meter_y), (meter_x + meter_width, meter_y + meter_height), (80, 80, 80), -1)
    fill = int(meter_width * max(0, min(100, result.confidence)) / 100)
    if fill > 0:
        cv2.rectangle(image, (meter_x, meter_y), (meter_x + fill, meter_y + meter_height),
                      confidence_color(result.confidence), -1)
    cv2.putText(image, f"{int(round(result.confidence))}%", (meter_x + meter_width // 2 - 15, meter_y + 15),
                cv2.FONT_HERSHEY_SIMPLEX, 0.5, COLOR_TEXT, 1)
    return image


def draw_hold_timer(image: np.ndarray, seconds: float, target_seconds: Optional[float] = None) -> np.ndarray:
    """Hold time (MM:SS) centered near the bottom edge"""
    height, width = image.shape[:2]
    text = format_duration(seconds)
    if target_seconds is not None:
        text = f"{text} / {format_duration(target_seconds)}"
    (text_w, text_h), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, 1.2, 3)
    x = (width - text_w) // 2
    y = height - 60
    cv2.rectangle(image, (x - 10, y - text_h - 10), (x + text_w + 10, y + 10), (0, 0, 0), -1)
    cv2.putText(image, text, (x, y), cv2.FONT_HERSHEY_SIMPLEX, 1.2, COLOR_TEXT, 3)
    return image
