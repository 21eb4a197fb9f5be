# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional, Union

import numpy as np
import pytest

from calibrator.gate import GateThresholds, SampleGate
from common.errors import PersistenceFailure


class FakeEngine:
    """Calibration engine double that records the calls made by the gate."""

    def __init__(self, accept: Union[bool, Callable[[np.ndarray], bool]] = True) -> None:
        self.accept = accept
        self.samples = 0
        self.calls: list[str] = []
        self.saved_to: list[Path] = []
        self.undistort_calls = 0
        self.fail_save = False

    @property
    def sample_count(self) -> int:
        return self.samples

    def add(self, frame: np.ndarray) -> bool:
        self.calls.append("add")
        accepted = self.accept(frame) if callable(self.accept) else self.accept
        if accepted:
            self.samples += 1
        return accepted

    def calibrate(self) -> bool:
        self.calls.append("calibrate")
        return True

    def clean(self) -> bool:
        self.calls.append("clean")
        return True

    def save(self, path: Path) -> None:
        self.calls.append("save")
        if self.fail_save:
            raise PersistenceFailure("disk full")
        self.saved_to.append(path)

    def undistort(self, frame: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        self.undistort_calls += 1
        if out is None:
            return frame.copy()
        np.copyto(out, frame)
        return out


class MotionSequence:
    """Builds consecutive frames whose motion score is exactly a given value.

    Scores must be multiples of 1 / frame size. The pixel deltas alternate in
    sign so values stay close to ``base``.
    """

    def __init__(self, shape: tuple[int, ...] = (10, 10), base: int = 100) -> None:
        self.current = np.full(shape, base, dtype=np.uint8)
        self._sign = 1

    def first(self) -> np.ndarray:
        return self.current.copy()

    def next(self, score: float) -> np.ndarray:
        size = self.current.size
        per_pixel, rest = divmod(round(score * size), size)
        delta = np.full(size, per_pixel, dtype=np.int16)
        delta[:rest] += 1
        frame = self.current.astype(np.int16) + self._sign * delta.reshape(self.current.shape)
        self._sign = -self._sign
        self.current = frame.astype(np.uint8)
        return self.current.copy()

    def still(self) -> np.ndarray:
        return self.next(0.0)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def frames() -> MotionSequence:
    return MotionSequence()


@pytest.fixture
def gate_factory(engine: FakeEngine, tmp_path: Path):
    """Factory creating a gate on the shared fake engine."""

    def _create_gate(
        motion_threshold: float = 2.5,
        min_interval: float = 1.0,
        cleaning_floor: int = 10,
        **kwargs,
    ) -> SampleGate:
        return SampleGate(
            engine,
            GateThresholds(
                motion_threshold=motion_threshold,
                min_interval=min_interval,
                cleaning_floor=cleaning_floor,
            ),
            tmp_path / "calibration.yml",
            **kwargs,
        )

    return _create_gate


@pytest.fixture
def gate(gate_factory) -> SampleGate:
    return gate_factory()
