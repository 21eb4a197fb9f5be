# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT

import numpy as np
import cv2


def frame_format(frame: np.ndarray) -> tuple[tuple[int, ...], str]:
    """Shape and dtype of a frame, used to check two frames are comparable."""
    return tuple(frame.shape), frame.dtype.str


def imitate(frame: np.ndarray) -> np.ndarray:
    """Allocate a zeroed buffer with the same shape and dtype as ``frame``."""
    return np.zeros_like(frame)


def motion_score(previous: np.ndarray, current: np.ndarray) -> float:
    """Mean absolute per-pixel difference between two frames of equal format.

    The absolute difference is averaged per channel first (float64
    accumulation), then the channel means are averaged with equal weight.
    Single-channel frames reduce to the plain mean.
    """
    diff = cv2.absdiff(previous, current)
    channels = 1 if diff.ndim == 2 else diff.shape[2]
    per_channel = diff.reshape(-1, channels).mean(axis=0, dtype=np.float64)
    return float(per_channel.mean())


def side_by_side(left: np.ndarray, right: np.ndarray) -> np.ndarray:
    """Stack two frames horizontally, padding the shorter one with black."""
    height = max(left.shape[0], right.shape[0])

    def pad(img: np.ndarray) -> np.ndarray:
        missing = height - img.shape[0]
        if missing <= 0:
            return img
        return cv2.copyMakeBorder(img, 0, missing, 0, 0, cv2.BORDER_CONSTANT, value=0)

    return np.hstack([pad(left), pad(right)])
