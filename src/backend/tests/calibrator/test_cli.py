# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
import cv2
import pytest
from opentelemetry.sdk.metrics import MeterProvider

import calibrator.cli as cli


@pytest.fixture(autouse=True)
def quiet_observability(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(
        cli,
        "configure_metrics",
        lambda *args, **kwargs: MeterProvider().get_meter("test"),
    )


def test_parse_defaults() -> None:
    args = cli.parse_calibrator_arguments([])

    assert args.serve is False
    assert args.port == 8002
    assert args.settings.name == "settings.yml"
    assert args.output.name == "calibration.yml"


def test_invalid_settings_exit_with_error(tmp_path) -> None:
    settings = tmp_path / "settings.yml"
    storage = cv2.FileStorage(str(settings), cv2.FILE_STORAGE_WRITE)
    storage.write("patternType", 9)
    storage.release()

    with pytest.raises(SystemExit) as exc:
        cli.main(["--settings", str(settings)])

    assert exc.value.code == 1


def test_unparseable_settings_exit_with_error(tmp_path) -> None:
    settings = tmp_path / "settings.yml"
    settings.write_text("%YAML:1.0\nxCount: [unclosed\n")

    with pytest.raises(SystemExit) as exc:
        cli.main(["--settings", str(settings)])

    assert exc.value.code == 1


def test_viewer_mode_runs_session(monkeypatch, tmp_path) -> None:
    import calibrator.viewer as viewer

    seen = {}

    def fake_run_viewer(session, camera_index, width, height):
        seen["session"] = session
        seen["camera_index"] = camera_index

    monkeypatch.setattr(viewer, "run_viewer", fake_run_viewer)
    output = tmp_path / "out" / "calibration.yml"

    cli.main(
        [
            "--settings",
            str(tmp_path / "missing.yml"),
            "--output",
            str(output),
            "--camera-index",
            "3",
        ]
    )

    assert seen["camera_index"] == 3
    assert seen["session"].gate.model_path == output
    assert seen["session"].engine.settings.pattern_size == (10, 7)
    assert output.parent.is_dir()


def test_camera_failure_exits_with_error(monkeypatch, tmp_path) -> None:
    import calibrator.viewer as viewer

    def no_camera(*args, **kwargs):
        raise RuntimeError("Cannot open webcam at index 0")

    monkeypatch.setattr(viewer, "run_viewer", no_camera)

    with pytest.raises(SystemExit) as exc:
        cli.main(["--settings", str(tmp_path / "missing.yml"), "--output", str(tmp_path / "c.yml")])

    assert exc.value.code == 1
