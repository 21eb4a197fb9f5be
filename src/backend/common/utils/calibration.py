# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
from typing import Optional

import cv2
import numpy as np

from common.pattern import PatternSettings, PatternType

_SUBPIX_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_COUNT, 30, 0.1)


def create_object_points(settings: PatternSettings) -> np.ndarray:
    """Board points in board coordinates (Z=0), shape (N, 3), row-major.

    Asymmetric circle grids shift every odd row by one spacing, so columns
    advance two spacings at a time.
    """
    cols, rows = settings.pattern_size
    ii, jj = np.meshgrid(np.arange(rows), np.arange(cols), indexing="ij")
    if settings.pattern_type is PatternType.ASYMMETRIC_CIRCLES_GRID:
        xs = 2 * jj + ii % 2
    else:
        xs = jj
    points = np.zeros((rows * cols, 3), np.float32)
    points[:, 0] = xs.ravel()
    points[:, 1] = ii.ravel()
    return points * np.float32(settings.square_size)


def to_gray(frame: np.ndarray) -> np.ndarray:
    if frame.ndim == 2:
        return frame
    if frame.shape[2] == 4:
        return cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)


def find_pattern(
    frame: np.ndarray, settings: PatternSettings, subpixel_window: int = 11
) -> Optional[np.ndarray]:
    """Detect the calibration board in ``frame``.

    Returns:
        Image points as an (N, 1, 2) float32 array, or None when the pattern
        is not visible.
    """
    gray = to_gray(frame)
    size = settings.pattern_size

    if settings.pattern_type is PatternType.CHESSBOARD:
        flags = cv2.CALIB_CB_ADAPTIVE_THRESH | cv2.CALIB_CB_NORMALIZE_IMAGE
        found, corners = cv2.findChessboardCorners(gray, size, flags=flags)
        if not found:
            return None
        half = max(1, subpixel_window // 2)
        refined = cv2.cornerSubPix(gray, corners, (half, half), (-1, -1), _SUBPIX_CRITERIA)
        return refined.reshape(-1, 1, 2).astype(np.float32)

    flags = cv2.CALIB_CB_CLUSTERING | (
        cv2.CALIB_CB_ASYMMETRIC_GRID
        if settings.pattern_type is PatternType.ASYMMETRIC_CIRCLES_GRID
        else cv2.CALIB_CB_SYMMETRIC_GRID
    )
    found, centers = cv2.findCirclesGrid(gray, size, flags=flags)
    return centers.reshape(-1, 1, 2).astype(np.float32) if found else None


def view_errors(
    object_points: np.ndarray,
    image_points: list[np.ndarray],
    rvecs: list[np.ndarray],
    tvecs: list[np.ndarray],
    camera_matrix: np.ndarray,
    dist_coeffs: np.ndarray,
) -> tuple[list[float], float]:
    """Per-view RMS reprojection error and the overall RMS over all points."""
    per_view: list[float] = []
    total_sq = 0.0
    total_points = 0
    for points, rvec, tvec in zip(image_points, rvecs, tvecs):
        projected, _ = cv2.projectPoints(
            object_points, rvec, tvec, camera_matrix, dist_coeffs
        )
        err = cv2.norm(
            points.reshape(-1, 2).astype(np.float64),
            projected.reshape(-1, 2).astype(np.float64),
            cv2.NORM_L2,
        )
        n = len(object_points)
        per_view.append(float(np.sqrt(err * err / n)))
        total_sq += err * err
        total_points += n
    overall = float(np.sqrt(total_sq / total_points)) if total_points else 0.0
    return per_view, overall


def field_of_view(
    camera_matrix: np.ndarray, image_size: tuple[int, int]
) -> tuple[float, float]:
    """Horizontal and vertical field of view in degrees."""
    fovx, fovy, *_ = cv2.calibrationMatrixValues(camera_matrix, image_size, 0.0, 0.0)
    return float(fovx), float(fovy)
