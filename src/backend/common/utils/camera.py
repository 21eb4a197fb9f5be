# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
from typing import Optional
import sys

import cv2
import numpy as np


def open_camera(
    idx: int, width: Optional[int] = None, height: Optional[int] = None
) -> cv2.VideoCapture:
    """Open a webcam using platform-appropriate OpenCV backends.

    Tries multiple backends depending on the operating system (e.g., DirectShow
    on Windows, AVFoundation on macOS, V4L2 on Linux). Returns the first
    successfully opened camera, with the requested capture size applied.

    Args:
        idx (int): The index of the camera to open.
        width (Optional[int]): Requested frame width in pixels.
        height (Optional[int]): Requested frame height in pixels.

    Returns:
        cv2.VideoCapture: An opened OpenCV VideoCapture object ready for frame reads.

    Raises:
        RuntimeError: If the camera cannot be opened with any backend.
    """
    if sys.platform.startswith("win"):
        backends = [cv2.CAP_DSHOW, cv2.CAP_ANY]
    elif sys.platform == "darwin":
        backends = [cv2.CAP_AVFOUNDATION, cv2.CAP_ANY]
    else:
        backends = [cv2.CAP_V4L2, cv2.CAP_ANY]

    last_error: Optional[str] = None
    for backend in backends:
        cap = (
            cv2.VideoCapture(idx, backend)
            if backend != cv2.CAP_ANY
            else cv2.VideoCapture(idx)
        )
        if cap.isOpened():
            if width:
                cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
            if height:
                cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
            return cap
        cap.release()
        last_error = f"backend={backend}"

    msg = f"Cannot open webcam at index {idx}"
    if last_error:
        msg += f" (last tried {last_error})"
    msg += ". Try CAMERA_INDEX=1 or ensure camera permissions are granted."
    raise RuntimeError(msg)


def read_frame(cap: cv2.VideoCapture) -> tuple[bool, Optional[np.ndarray]]:
    """Read a single frame from the camera.

    Used with run_in_executor to avoid blocking the asyncio event loop.

    Returns:
        Tuple[bool, Optional[np.ndarray]]: A tuple where the first element
        indicates success, and the second is the captured frame (or None if failed).
    """
    return cap.read()
