# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import cv2
import numpy as np

from calibrator.gate import GateAction
from calibrator.session import CalibrationSession, CalibrationStatus
from common.core.camera import LatestFrameRelay

logger = logging.getLogger("manager")


class CalibrationManager:
    """Runs the gate against frames from a background camera reader.

    Gate state is only ever touched while holding ``_lock``; ticks run on a
    single worker thread so the event loop stays responsive while OpenCV
    recalibrates.
    """

    def __init__(
        self,
        session: CalibrationSession,
        relay: Optional[LatestFrameRelay] = None,
    ) -> None:
        self.session = session
        self.relay = relay or LatestFrameRelay()
        self._lock = asyncio.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._processing_task: asyncio.Task[None] | None = None
        self.max_consecutive_errors = 5

    async def start(self) -> None:
        """Open the camera and start processing frames."""
        if self._processing_task and not self._processing_task.done():
            return
        await self.relay.start()
        self._processing_task = asyncio.create_task(self._process_frames())

    async def stop(self) -> None:
        """Stop processing once the in-flight tick has returned."""
        task, self._processing_task = self._processing_task, None
        if task:
            task.cancel()
            # a loop that already gave up has logged its error
            await asyncio.gather(task, return_exceptions=True)
        await self.relay.stop()
        executor, self._executor = self._executor, None
        if executor is not None:
            await asyncio.to_thread(executor.shutdown, True)

    async def _process_frames(self) -> None:
        consecutive_errors = 0
        while True:
            frame = await self.relay.next_frame()
            try:
                await self.evaluate(frame)
                consecutive_errors = 0
            except Exception:
                consecutive_errors += 1
                logger.exception("Frame processing error")
                if consecutive_errors >= self.max_consecutive_errors:
                    logger.error("Too many consecutive processing errors, stopping")
                    raise
                await asyncio.sleep(0.1)

    async def evaluate(self, frame: np.ndarray, now: Optional[float] = None) -> GateAction:
        """Run one gate tick with exclusive access to the session."""
        loop = asyncio.get_running_loop()
        async with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="gate")
            future = loop.run_in_executor(self._executor, self.session.tick, frame, now)
            try:
                return await asyncio.shield(future)
            except asyncio.CancelledError:
                # the worker owns the session until the tick returns
                await asyncio.wait([future])
                raise

    async def toggle(self) -> bool:
        async with self._lock:
            return self.session.toggle()

    async def status(self) -> CalibrationStatus:
        async with self._lock:
            return self.session.snapshot()

    async def undistorted_jpeg(self, quality: int = 85) -> Optional[bytes]:
        async with self._lock:
            frame = self.session.undistorted
            if frame is None:
                return None
            ok, encoded = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, quality])
        return encoded.tobytes() if ok else None
