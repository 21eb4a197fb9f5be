# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
import logging
import time
from typing import Optional

import cv2
import numpy as np

from calibrator.session import CalibrationSession
from common.utils.camera import open_camera, read_frame
from common.utils.image import side_by_side

logger = logging.getLogger(__name__)

WINDOW_NAME = "calibration"
TOGGLE_KEY = ord(" ")
QUIT_KEYS = (ord("q"), 27)

# BGR
_YELLOW = (0, 255, 255)
_CYAN = (255, 255, 0)
_MAGENTA = (255, 0, 255)


def draw_overlay(canvas: np.ndarray, lines: list[str]) -> np.ndarray:
    """Draw the status lines top-left, each on a black highlight box."""
    colors = [_YELLOW, _CYAN] + [_MAGENTA] * max(0, len(lines) - 2)
    y = 20
    for i, (text, color) in enumerate(zip(lines, colors)):
        (w, h), baseline = cv2.getTextSize(text, cv2.FONT_HERSHEY_PLAIN, 1.0, 1)
        cv2.rectangle(canvas, (8, y - h - 3), (12 + w, y + baseline), (0, 0, 0), -1)
        cv2.putText(canvas, text, (10, y), cv2.FONT_HERSHEY_PLAIN, 1.0, color, 1)
        y += 20 if i < 2 else 16
    return canvas


def handle_key(session: CalibrationSession, key: int) -> bool:
    """Apply a key press. Returns False when the viewer should exit."""
    if key == TOGGLE_KEY:
        session.toggle()
    return key not in QUIT_KEYS


def render(session: CalibrationSession, frame: np.ndarray) -> np.ndarray:
    right = session.undistorted
    if right is None:
        right = np.zeros_like(frame)
    return draw_overlay(side_by_side(frame, right), session.overlay_lines())


def run_viewer(
    session: CalibrationSession,
    camera_index: int,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> None:
    """Capture, gate and display frames until ``q``/Esc is pressed.

    Space pauses or resumes automatic capture. Everything runs on the calling
    thread, one gate tick per new frame.
    """
    cap = open_camera(camera_index, width, height)
    cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_AUTOSIZE)
    try:
        running = True
        while running:
            ok, frame = read_frame(cap)
            if ok and frame is not None:
                session.tick(frame, time.monotonic())
                cv2.imshow(WINDOW_NAME, render(session, frame))
            running = handle_key(session, cv2.waitKey(1) & 0xFF)
    finally:
        cap.release()
        cv2.destroyWindow(WINDOW_NAME)
        logger.info(
            "Viewer closed",
            extra={
                "samples": session.engine.sample_count,
                "reprojection_error": session.engine.reprojection_error(),
            },
        )
