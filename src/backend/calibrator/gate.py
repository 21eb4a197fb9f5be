# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
"""Stability-gated sample accumulator.

Decides once per frame whether the frame becomes a new calibration sample and,
when it does, drives recalibration, outlier cleaning and persistence on the
calibration engine.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

import numpy as np

from common.config import Config
from common.errors import FormatMismatch, PersistenceFailure
from common.metrics import GateInstruments
from common.protocols import CalibrationEngine
from common.utils.image import frame_format, imitate, motion_score

logger = logging.getLogger(__name__)


class GateAction(str, Enum):
    """What a single tick did."""

    SKIPPED = "skipped"  # not eligible: paused, too soon, moving, or bad frame
    REJECTED = "rejected"  # eligible but the engine did not take the frame
    ADMITTED = "admitted"
    ADMITTED_AND_CLEANED = "admitted_and_cleaned"

    @property
    def admitted(self) -> bool:
        return self in (GateAction.ADMITTED, GateAction.ADMITTED_AND_CLEANED)


@dataclass(frozen=True)
class GateThresholds:
    motion_threshold: float = 2.5
    min_interval: float = 1.0
    cleaning_floor: int = 10

    @classmethod
    def from_config(cls, cfg: Config) -> "GateThresholds":
        return cls(
            motion_threshold=cfg.MOTION_THRESHOLD,
            min_interval=cfg.MIN_CAPTURE_INTERVAL,
            cleaning_floor=cfg.CLEANING_FLOOR,
        )


@dataclass
class GateState:
    active: bool = True
    last_accepted_time: Optional[float] = None


class SampleGate:
    """Per-frame admission policy in front of a :class:`CalibrationEngine`.

    The gate owns two frame buffers: the previous frame (always the most
    recently *seen* frame) and the undistorted output. Both are allocated
    from the first frame and every later frame must have the same format.
    """

    def __init__(
        self,
        engine: CalibrationEngine,
        thresholds: GateThresholds,
        model_path: Path,
        instruments: Optional[GateInstruments] = None,
    ) -> None:
        self.engine = engine
        self.thresholds = thresholds
        self.model_path = Path(model_path)
        self.state = GateState()
        self._instruments = instruments

        self._previous: Optional[np.ndarray] = None
        self.undistorted: Optional[np.ndarray] = None
        self.motion_score = 0.0
        self.last_action: Optional[GateAction] = None

    @property
    def primed(self) -> bool:
        return self._previous is not None

    def prime(self, frame: np.ndarray) -> None:
        """Allocate the buffers in the format of ``frame``."""
        self._previous = frame.copy()
        self.undistorted = imitate(frame)

    def toggle(self) -> bool:
        """Flip ``active``. Timing and buffers are left untouched."""
        self.state.active = not self.state.active
        logger.info("Auto-capture %s", "resumed" if self.state.active else "paused")
        return self.state.active

    def _check_format(self, frame: np.ndarray) -> None:
        assert self._previous is not None
        expected, actual = frame_format(self._previous), frame_format(frame)
        if expected != actual:
            raise FormatMismatch(expected, actual)

    def evaluate(self, frame: np.ndarray, now: Optional[float] = None) -> GateAction:
        """Process one frame taken at monotonic time ``now`` (seconds)."""
        if now is None:
            now = time.monotonic()
        if not self.primed:
            self.prime(frame)

        try:
            self._check_format(frame)
        except FormatMismatch as err:
            logger.warning("Skipping frame with unexpected format", extra={"error": str(err)})
            return self._finish(GateAction.SKIPPED)

        assert self._previous is not None
        score = motion_score(self._previous, frame)
        np.copyto(self._previous, frame)
        self.motion_score = score
        if self._instruments:
            self._instruments.motion_score.record(score)

        action = GateAction.SKIPPED
        if self._eligible(score, now):
            action = self._admit(frame, now)

        if self.engine.sample_count > 0:
            try:
                self.undistorted = self.engine.undistort(frame, self.undistorted)
            except Exception:
                logger.exception("Undistortion failed")

        return self._finish(action)

    def _eligible(self, score: float, now: float) -> bool:
        last = self.state.last_accepted_time
        return (
            self.state.active
            and (last is None or now - last > self.thresholds.min_interval)
            and score < self.thresholds.motion_threshold
        )

    def _admit(self, frame: np.ndarray, now: float) -> GateAction:
        try:
            accepted = self.engine.add(frame)
        except Exception:
            logger.exception("Calibration engine failed while adding a sample")
            return GateAction.REJECTED
        if not accepted:
            logger.debug("Pattern not found in still frame")
            return GateAction.REJECTED

        logger.info("Re-calibrating", extra={"samples": self.engine.sample_count})
        cleaned = False
        started = time.perf_counter()
        try:
            if not self.engine.calibrate():
                logger.warning(
                    "Calibration did not converge",
                    extra={"samples": self.engine.sample_count},
                )
            if self.engine.sample_count > self.thresholds.cleaning_floor:
                self.engine.clean()
                cleaned = True
        except Exception:
            logger.exception("Calibration engine failed after admitting a sample")
        if self._instruments:
            self._instruments.recalibration_duration.record(time.perf_counter() - started)

        try:
            self.engine.save(self.model_path)
        except PersistenceFailure as err:
            # memory keeps the sample; the next admission rewrites the file
            logger.warning(
                "Could not persist calibration",
                extra={"path": str(self.model_path), "error": str(err)},
            )
            if self._instruments:
                self._instruments.persistence_failures.add(1)

        self.state.last_accepted_time = now
        return GateAction.ADMITTED_AND_CLEANED if cleaned else GateAction.ADMITTED

    def _finish(self, action: GateAction) -> GateAction:
        self.last_action = action
        if self._instruments:
            self._instruments.ticks.add(1, {"action": action.value})
        return action
