# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
import asyncio
import contextlib
import logging
from typing import Optional

import cv2
import numpy as np

from common.config import config
from common.utils.camera import open_camera, read_frame

logger = logging.getLogger(__name__)


class LatestFrameRelay:
    """Single-slot hand-off between a background camera reader and one consumer.

    A new frame overwrites the slot whether or not the previous one was
    consumed; nothing is queued.
    """

    def __init__(self, camera_index: Optional[int] = None) -> None:
        self._camera_index = config.CAMERA_INDEX if camera_index is None else camera_index
        self._lock = asyncio.Lock()
        self._cap: Optional[cv2.VideoCapture] = None
        self._frame: Optional[np.ndarray] = None
        self._frame_id = 0
        self._consumed_id = 0
        self._frame_ready = asyncio.Event()
        self._running = False
        self._reader_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Open the camera and start reading frames in the background.

        Reads run in the default thread executor so the event loop is never
        blocked by the driver.
        """
        async with self._lock:
            if self._cap is not None:
                return
            self._cap = open_camera(
                self._camera_index, config.CAMERA_WIDTH, config.CAMERA_HEIGHT
            )
            self._running = True
            self._reader_task = asyncio.create_task(self._read_loop())

    async def stop(self) -> None:
        """Stop the reader, release the camera and drop any pending frame."""
        async with self._lock:
            self._running = False
            if self._reader_task:
                self._reader_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._reader_task
            if self._cap is not None:
                self._cap.release()
                self._cap = None
            self._frame = None
            self._reader_task = None

    async def _read_loop(self) -> None:
        """Continuously read frames; back off ~30 ms after a failed read."""
        loop = asyncio.get_running_loop()
        while self._running and self._cap:
            ok, frame = await loop.run_in_executor(None, read_frame, self._cap)
            if ok and frame is not None:
                self.publish(frame)
            else:
                await asyncio.sleep(0.03)

    def publish(self, frame: np.ndarray) -> None:
        """Place ``frame`` in the slot, replacing any unconsumed frame."""
        self._frame = frame
        self._frame_id += 1
        self._frame_ready.set()

    def is_frame_new(self) -> bool:
        return self._frame is not None and self._frame_id != self._consumed_id

    def get_frame(self) -> Optional[np.ndarray]:
        self._consumed_id = self._frame_id
        self._frame_ready.clear()
        return self._frame

    async def next_frame(self) -> np.ndarray:
        """Wait until a frame that has not been handed out yet is available."""
        while not self.is_frame_new():
            await self._frame_ready.wait()
            if not self.is_frame_new():
                self._frame_ready.clear()
        frame = self.get_frame()
        assert frame is not None
        return frame

    @property
    def frame_id(self) -> int:
        return self._frame_id
