# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
import numpy as np
import pytest

from calibrator.gate import GateAction, GateThresholds
from calibrator.session import CalibrationSession
from common.core.calibration import OpenCVCalibration
from common.pattern import PatternSettings


@pytest.fixture
def session(tmp_path) -> CalibrationSession:
    return CalibrationSession.create(
        PatternSettings(x_count=7, y_count=5, square_size=1.0),
        model_path=tmp_path / "calibration.yml",
        thresholds=GateThresholds(motion_threshold=2.5, min_interval=1.0, cleaning_floor=10),
    )


def test_create_wires_engine_and_gate(session, tmp_path) -> None:
    assert isinstance(session.engine, OpenCVCalibration)
    assert session.gate.engine is session.engine
    assert session.gate.model_path == tmp_path / "calibration.yml"


def test_tick_admits_still_chessboard_and_persists(session, chessboard_image, tmp_path) -> None:
    action = session.tick(chessboard_image, now=0.0)

    assert action is GateAction.ADMITTED
    assert session.engine.sample_count == 1
    assert (tmp_path / "calibration.yml").is_file()
    assert session.undistorted is not None
    assert session.undistorted.shape == chessboard_image.shape


def test_tick_without_pattern_is_rejected(session) -> None:
    blank = np.full((120, 160, 3), 90, dtype=np.uint8)

    assert session.tick(blank, now=0.0) is GateAction.REJECTED
    assert session.undistorted is None


def test_snapshot_reflects_current_state(session, chessboard_image) -> None:
    session.tick(chessboard_image, now=0.0)
    session.toggle()

    status = session.snapshot()

    assert status.active is False
    assert status.frames_seen == 1
    assert status.sample_count == 1
    assert status.motion_score == 0.0
    assert status.last_action is GateAction.ADMITTED
    assert status.last_accepted_time == 0.0
    assert len(status.dist_coeffs) == 5


def test_snapshot_is_recomputed_each_call(session, chessboard_image) -> None:
    before = session.snapshot()
    session.tick(chessboard_image, now=0.0)

    assert before.sample_count == 0
    assert session.snapshot().sample_count == 1


def test_overlay_lines(session, project_views, board_settings) -> None:
    lines = session.overlay_lines()

    assert lines[0].startswith("fov: n/a distCoeffs: [")
    assert lines[1] == "movement: 0.000"
    assert lines[2] == "reproj error: 0.0000 from 0"

    session.toggle()
    assert session.overlay_lines()[1].endswith("(paused)")


def test_overlay_lists_per_sample_errors(tmp_path, project_views, board_settings) -> None:
    session = CalibrationSession.create(board_settings, model_path=tmp_path / "c.yml")
    for points in project_views(4):
        session.engine.add_observation(points, (640, 480))
    session.engine.calibrate()

    lines = session.overlay_lines()

    assert lines[2].endswith("from 4")
    assert [line.split(":")[0] for line in lines[3:]] == ["0", "1", "2", "3"]
    assert not lines[0].startswith("fov: n/a")
