# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
from __future__ import annotations

import cv2
import numpy as np
import pytest

from common.pattern import PatternSettings
from common.utils.calibration import create_object_points

CAMERA_MATRIX = np.array(
    [[800.0, 0.0, 320.0], [0.0, 800.0, 240.0], [0.0, 0.0, 1.0]], dtype=np.float64
)
# board poses (rvec, tvec) that keep a 9x6 board with 25 mm squares in view
POSES = [
    ((0.10, 0.20, 0.00), (-100.0, -60.0, 600.0)),
    ((-0.20, 0.10, 0.05), (-90.0, -70.0, 650.0)),
    ((0.15, -0.25, 0.10), (-110.0, -50.0, 620.0)),
    ((-0.10, -0.15, -0.05), (-95.0, -65.0, 580.0)),
    ((0.30, 0.00, 0.02), (-100.0, -55.0, 700.0)),
    ((0.00, 0.30, -0.10), (-105.0, -62.0, 640.0)),
]


@pytest.fixture
def board_settings() -> PatternSettings:
    return PatternSettings(x_count=9, y_count=6, square_size=25.0)


@pytest.fixture
def project_views(board_settings):
    """Project the board through a known camera for the first ``n`` poses."""

    def _project(n: int = len(POSES)) -> list[np.ndarray]:
        object_points = create_object_points(board_settings)
        views = []
        for rvec, tvec in POSES[:n]:
            points, _ = cv2.projectPoints(
                object_points,
                np.array(rvec, dtype=np.float64),
                np.array(tvec, dtype=np.float64),
                CAMERA_MATRIX,
                np.zeros(5),
            )
            views.append(points.astype(np.float32))
        return views

    return _project


def render_chessboard(
    squares: tuple[int, int] = (8, 6), square_px: int = 40, margin: int = 40
) -> np.ndarray:
    """Flat BGR chessboard with ``squares`` (cols, rows) and a white border."""
    cols, rows = squares
    img = np.full((rows * square_px + 2 * margin, cols * square_px + 2 * margin), 255, np.uint8)
    for r in range(rows):
        for c in range(cols):
            if (r + c) % 2 == 0:
                y, x = margin + r * square_px, margin + c * square_px
                img[y : y + square_px, x : x + square_px] = 0
    return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)


@pytest.fixture
def chessboard_image() -> np.ndarray:
    """8x6 squares, i.e. 7x5 inner corners."""
    return render_chessboard()
