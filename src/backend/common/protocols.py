# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class FrameSource(Protocol):
    """Produces sequential frames on demand."""

    def is_frame_new(self) -> bool:
        """Return True when a frame not yet handed out by get_frame() exists."""
        ...

    def get_frame(self) -> Optional[np.ndarray]:
        """Return the latest frame and mark it as consumed."""
        ...


@runtime_checkable
class CalibrationEngine(Protocol):
    """Calibration backend the sample gate drives.

    The engine owns the sample set; the gate only adds, recalibrates, cleans,
    persists and asks for its size.
    """

    @property
    def sample_count(self) -> int:
        """Number of accepted pattern observations."""
        ...

    def add(self, frame: np.ndarray) -> bool:
        """Detect the pattern in ``frame`` and store it. False if not found."""
        ...

    def calibrate(self) -> bool:
        """Re-estimate intrinsics from all samples. False on failure."""
        ...

    def clean(self) -> bool:
        """Drop outlier samples (and recalibrate if any were dropped)."""
        ...

    def save(self, path: Path) -> None:
        """Fully overwrite ``path`` with the current model."""
        ...

    def undistort(
        self, frame: np.ndarray, out: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """Return ``frame`` with lens distortion removed, written into ``out``."""
        ...
