# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
import logging
import time
from pathlib import Path
from typing import Optional

import numpy as np
from pydantic import BaseModel

from calibrator.gate import GateAction, GateThresholds, SampleGate
from common.config import Config, config
from common.core.calibration import OpenCVCalibration
from common.metrics import GateInstruments
from common.pattern import PatternSettings

logger = logging.getLogger(__name__)


class CalibrationStatus(BaseModel):
    """Read-only view of gate and engine state, rebuilt on every request."""

    active: bool
    frames_seen: int
    motion_score: float
    sample_count: int
    ready: bool
    reprojection_error: float
    per_sample_errors: list[float]
    fov: tuple[float, float] | None = None
    dist_coeffs: list[float]
    last_action: GateAction | None = None
    last_accepted_time: float | None = None


class CalibrationSession:
    """A calibration engine together with the gate that feeds it."""

    def __init__(self, engine: OpenCVCalibration, gate: SampleGate) -> None:
        self.engine = engine
        self.gate = gate
        self.frames_seen = 0

    @classmethod
    def create(
        cls,
        settings: PatternSettings,
        model_path: Optional[Path] = None,
        thresholds: Optional[GateThresholds] = None,
        instruments: Optional[GateInstruments] = None,
        cfg: Config = config,
    ) -> "CalibrationSession":
        engine = OpenCVCalibration(
            settings,
            clean_max_error=cfg.CLEAN_MAX_REPROJECTION_ERROR,
            fill_frame=cfg.FILL_FRAME,
            subpixel_window=cfg.SUBPIXEL_WINDOW,
        )
        gate = SampleGate(
            engine,
            thresholds or GateThresholds.from_config(cfg),
            model_path or cfg.CALIBRATION_PATH,
            instruments=instruments,
        )
        logger.info(
            "Calibration session ready",
            extra={
                "pattern_size": settings.pattern_size,
                "pattern_type": settings.pattern_type.name,
                "model_path": str(gate.model_path),
                "motion_threshold": gate.thresholds.motion_threshold,
                "min_interval": gate.thresholds.min_interval,
                "cleaning_floor": gate.thresholds.cleaning_floor,
            },
        )
        return cls(engine, gate)

    def tick(self, frame: np.ndarray, now: Optional[float] = None) -> GateAction:
        self.frames_seen += 1
        return self.gate.evaluate(frame, time.monotonic() if now is None else now)

    def toggle(self) -> bool:
        return self.gate.toggle()

    @property
    def undistorted(self) -> Optional[np.ndarray]:
        if self.engine.sample_count == 0:
            return None
        return self.gate.undistorted

    def snapshot(self) -> CalibrationStatus:
        return CalibrationStatus(
            active=self.gate.state.active,
            frames_seen=self.frames_seen,
            motion_score=self.gate.motion_score,
            sample_count=self.engine.sample_count,
            ready=self.engine.ready,
            reprojection_error=self.engine.reprojection_error(),
            per_sample_errors=list(self.engine.per_view_errors),
            fov=self.engine.field_of_view(),
            dist_coeffs=np.asarray(self.engine.dist_coeffs).ravel().tolist(),
            last_action=self.gate.last_action,
            last_accepted_time=self.gate.state.last_accepted_time,
        )

    def overlay_lines(self) -> list[str]:
        """Text shown over the live view, one entry per line."""
        status = self.snapshot()
        fov = "n/a" if status.fov is None else f"{status.fov[0]:.2f}, {status.fov[1]:.2f}"
        coeffs = ", ".join(f"{c:.4f}" for c in status.dist_coeffs)
        lines = [
            f"fov: {fov} distCoeffs: [{coeffs}]",
            f"movement: {status.motion_score:.3f}"
            + ("" if status.active else " (paused)"),
            f"reproj error: {status.reprojection_error:.4f} from {status.sample_count}",
        ]
        lines += [f"{i}: {err:.4f}" for i, err in enumerate(status.per_sample_errors)]
        return lines
