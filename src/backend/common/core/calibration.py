# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
"""OpenCV-backed calibration engine.

Holds the sample set (one array of image points per accepted view), the
current intrinsics and the undistortion maps. Everything mathematical is
delegated to ``cv2``.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from common.errors import PersistenceFailure
from common.pattern import PatternSettings
from common.utils.calibration import (
    create_object_points,
    field_of_view,
    find_pattern,
    view_errors,
)

logger = logging.getLogger(__name__)

_CALIBRATION_FLAGS = cv2.CALIB_FIX_K4 | cv2.CALIB_FIX_K5


def _finite(*arrays: np.ndarray) -> bool:
    return all(a is not None and a.size > 0 and bool(np.isfinite(a).all()) for a in arrays)


class OpenCVCalibration:
    """Incrementally refined single-camera calibration."""

    def __init__(
        self,
        settings: PatternSettings,
        clean_max_error: float = 2.0,
        fill_frame: bool = True,
        subpixel_window: int = 11,
    ) -> None:
        self.settings = settings
        self.clean_max_error = clean_max_error
        self.fill_frame = fill_frame
        self.subpixel_window = subpixel_window

        self._object_points = create_object_points(settings)
        self.image_points: list[np.ndarray] = []
        self.image_size: Optional[tuple[int, int]] = None  # (width, height)

        self.camera_matrix = np.eye(3, dtype=np.float64)
        self.dist_coeffs = np.zeros((5, 1), dtype=np.float64)
        self.per_view_errors: list[float] = []
        self.overall_error = 0.0
        self.ready = False

        self._undistort_maps: Optional[tuple[np.ndarray, np.ndarray]] = None

    @property
    def sample_count(self) -> int:
        return len(self.image_points)

    def add(self, frame: np.ndarray) -> bool:
        """Detect the pattern in ``frame`` and keep the observation if found."""
        points = find_pattern(frame, self.settings, self.subpixel_window)
        if points is None:
            return False
        self.add_observation(points, (frame.shape[1], frame.shape[0]))
        return True

    def add_observation(self, points: np.ndarray, image_size: tuple[int, int]) -> None:
        """Store already-detected image points for a view of ``image_size``."""
        if len(points.reshape(-1, 2)) != len(self._object_points):
            raise ValueError(
                f"expected {len(self._object_points)} points, got {len(points.reshape(-1, 2))}"
            )
        if self.image_size is not None and self.image_size != tuple(image_size):
            raise ValueError(f"image size {image_size} differs from {self.image_size}")
        self.image_size = (int(image_size[0]), int(image_size[1]))
        self.image_points.append(points.reshape(-1, 1, 2).astype(np.float32))

    def calibrate(self) -> bool:
        """Re-estimate intrinsics and distortion from every stored view."""
        if not self.image_points or self.image_size is None:
            return False

        object_points = [self._object_points] * len(self.image_points)
        try:
            _, camera_matrix, dist_coeffs, rvecs, tvecs = cv2.calibrateCamera(
                object_points,
                self.image_points,
                self.image_size,
                None,
                None,
                flags=_CALIBRATION_FLAGS,
            )
        except cv2.error as err:
            return self._calibration_failed(str(err).strip())
        if not _finite(camera_matrix, dist_coeffs):
            return self._calibration_failed("non-finite intrinsics")

        self.camera_matrix = camera_matrix
        self.dist_coeffs = dist_coeffs
        self.per_view_errors, self.overall_error = view_errors(
            self._object_points,
            self.image_points,
            rvecs,
            tvecs,
            camera_matrix,
            dist_coeffs,
        )
        self.ready = True
        self._undistort_maps = None
        return True

    def _calibration_failed(self, reason: str) -> bool:
        # the previous intrinsics stay, but errors no longer match the views
        logger.warning(
            "Calibration failed", extra={"samples": self.sample_count, "error": reason}
        )
        self.per_view_errors = []
        self.overall_error = 0.0
        self.ready = False
        self._undistort_maps = None
        return False

    def clean(self, max_error: Optional[float] = None) -> bool:
        """Drop views whose reprojection error exceeds ``max_error``.

        Recalibrates when anything was dropped. Returns False if that
        recalibration fails or no views are left.
        """
        threshold = self.clean_max_error if max_error is None else max_error
        keep = [
            i for i, err in enumerate(self.per_view_errors) if err <= threshold
        ]
        # views added since the last calibrate() have no error yet; keep them
        keep += list(range(len(self.per_view_errors), self.sample_count))
        removed = self.sample_count - len(keep)
        if removed == 0:
            return True

        self.image_points = [self.image_points[i] for i in keep]
        logger.info(
            "Removed outlier views",
            extra={"removed": removed, "remaining": self.sample_count, "max_error": threshold},
        )
        if not self.image_points:
            logger.error("Cleaning removed the last calibration view")
            self.per_view_errors = []
            self.overall_error = 0.0
            self.ready = False
            self._undistort_maps = None
            return False
        return self.calibrate()

    def reprojection_error(self, index: Optional[int] = None) -> float:
        """Overall RMS error, or the error of view ``index``."""
        if index is None:
            return self.overall_error
        return self.per_view_errors[index]

    def field_of_view(self) -> Optional[tuple[float, float]]:
        if not self.ready or self.image_size is None:
            return None
        return field_of_view(self.camera_matrix, self.image_size)

    def undistort(
        self, frame: np.ndarray, out: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """Remove lens distortion; a plain copy while not calibrated."""
        if not self.ready or self.image_size != (frame.shape[1], frame.shape[0]):
            if out is None:
                return frame.copy()
            np.copyto(out, frame)
            return out

        if self._undistort_maps is None:
            self._undistort_maps = self._build_undistort_maps()
        map1, map2 = self._undistort_maps
        if out is None:
            return cv2.remap(frame, map1, map2, cv2.INTER_LINEAR)
        return cv2.remap(frame, map1, map2, cv2.INTER_LINEAR, dst=out)

    def _build_undistort_maps(self) -> tuple[np.ndarray, np.ndarray]:
        assert self.image_size is not None
        # alpha 0 crops to valid pixels only, alpha 1 keeps the whole source
        alpha = 0.0 if self.fill_frame else 1.0
        new_matrix, _ = cv2.getOptimalNewCameraMatrix(
            self.camera_matrix, self.dist_coeffs, self.image_size, alpha, self.image_size
        )
        return cv2.initUndistortRectifyMap(
            self.camera_matrix,
            self.dist_coeffs,
            None,
            new_matrix,
            self.image_size,
            cv2.CV_16SC2,
        )

    def save(self, path: Path) -> None:
        """Write the full model to ``path``, replacing it atomically.

        Raises:
            PersistenceFailure: If the file cannot be written.
        """
        path = Path(path)
        # keep the extension so FileStorage picks the same format
        tmp_path = path.with_name(f".{path.stem}.tmp{path.suffix or '.yml'}")
        width, height = self.image_size or (0, 0)
        try:
            storage = cv2.FileStorage(str(tmp_path), cv2.FILE_STORAGE_WRITE)
            if not storage.isOpened():
                raise PersistenceFailure(f"cannot open {tmp_path} for writing")
            try:
                storage.write("cameraMatrix", self.camera_matrix)
                storage.write("imageSize_width", width)
                storage.write("imageSize_height", height)
                storage.write("sensorSize_width", 0.0)
                storage.write("sensorSize_height", 0.0)
                storage.write("distCoeffs", self.dist_coeffs)
                storage.write("reprojectionError", float(self.overall_error))
                if self.per_view_errors:
                    storage.write(
                        "perViewErrors",
                        np.asarray(self.per_view_errors, dtype=np.float64).reshape(-1, 1),
                    )
                storage.startWriteStruct("features", cv2.FILE_NODE_SEQ)
                for points in self.image_points:
                    storage.write("", points.reshape(-1, 2))
                storage.endWriteStruct()
            finally:
                storage.release()
            os.replace(tmp_path, path)
        except PersistenceFailure:
            tmp_path.unlink(missing_ok=True)
            raise
        except (OSError, cv2.error) as err:
            tmp_path.unlink(missing_ok=True)
            raise PersistenceFailure(f"cannot write calibration to {path}: {err}") from err

    @classmethod
    def load(
        cls, path: Path, settings: PatternSettings, **kwargs: object
    ) -> "OpenCVCalibration":
        """Restore a model written by :meth:`save`.

        The pattern geometry is not part of the file and must match the one
        the model was recorded with.
        """
        if not Path(path).is_file():
            raise FileNotFoundError(f"no calibration file at {path}")
        try:
            storage = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
        except (cv2.error, SystemError) as err:
            raise OSError(f"cannot parse calibration file {path}: {err}") from err
        if not storage.isOpened():
            raise OSError(f"cannot open calibration file {path}")
        engine = cls(settings, **kwargs)  # type: ignore[arg-type]
        try:
            engine.camera_matrix = storage.getNode("cameraMatrix").mat()
            engine.dist_coeffs = storage.getNode("distCoeffs").mat()
            width = int(storage.getNode("imageSize_width").real())
            height = int(storage.getNode("imageSize_height").real())
            engine.overall_error = storage.getNode("reprojectionError").real()
            errors = storage.getNode("perViewErrors")
            engine.per_view_errors = (
                [] if errors.empty() or errors.isNone() else errors.mat().ravel().tolist()
            )
            features = storage.getNode("features")
            for i in range(features.size()):
                engine.add_observation(features.at(i).mat(), (width, height))
        finally:
            storage.release()

        if width and height:
            engine.image_size = (width, height)
        engine.ready = engine.sample_count > 0 and _finite(
            engine.camera_matrix, engine.dist_coeffs
        )
        return engine
