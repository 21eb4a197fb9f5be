# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
import asyncio

import numpy as np
import pytest

from common.core.camera import LatestFrameRelay
from common.protocols import FrameSource


@pytest.fixture
def dummy_cap():
    class DummyCap:
        def __init__(self):
            self.opened = True
            self.reads = 0

        def isOpened(self):
            return True

        def read(self):
            self.reads += 1
            return True, np.full((8, 8, 3), self.reads % 256, dtype=np.uint8)

        def release(self):
            self.opened = False

    return DummyCap()


@pytest.fixture
def camera_mod(monkeypatch, dummy_cap):
    import common.core.camera as camera

    monkeypatch.setattr(camera, "open_camera", lambda idx, width, height: dummy_cap)
    return camera


def test_relay_is_a_frame_source() -> None:
    assert isinstance(LatestFrameRelay(0), FrameSource)


def test_new_frame_overwrites_unconsumed_one() -> None:
    relay = LatestFrameRelay(0)
    assert relay.is_frame_new() is False

    first = np.zeros((2, 2), np.uint8)
    second = np.ones((2, 2), np.uint8)
    relay.publish(first)
    relay.publish(second)

    assert relay.is_frame_new() is True
    assert relay.get_frame() is second
    assert relay.is_frame_new() is False
    assert relay.frame_id == 2


@pytest.mark.asyncio
async def test_next_frame_waits_for_publish() -> None:
    relay = LatestFrameRelay(0)
    waiter = asyncio.create_task(relay.next_frame())
    await asyncio.sleep(0.01)
    assert not waiter.done()

    frame = np.zeros((2, 2), np.uint8)
    relay.publish(frame)

    assert await asyncio.wait_for(waiter, timeout=1.0) is frame


@pytest.mark.asyncio
async def test_next_frame_does_not_repeat_consumed_frame() -> None:
    relay = LatestFrameRelay(0)
    relay.publish(np.zeros((2, 2), np.uint8))
    await relay.next_frame()

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(relay.next_frame(), timeout=0.05)


@pytest.mark.asyncio
async def test_start_reads_frames_and_stop_releases(camera_mod, dummy_cap) -> None:
    relay = camera_mod.LatestFrameRelay(0)

    await relay.start()
    frame = await asyncio.wait_for(relay.next_frame(), timeout=1.0)
    assert frame.shape == (8, 8, 3)

    await relay.stop()
    assert dummy_cap.opened is False
    assert relay.is_frame_new() is False


@pytest.mark.asyncio
async def test_start_propagates_open_errors(monkeypatch) -> None:
    import common.core.camera as camera

    def raise_funny_error(idx, width, height):
        raise RuntimeError("Hohoho")

    monkeypatch.setattr(camera, "open_camera", raise_funny_error)

    with pytest.raises(RuntimeError, match="Hohoho"):
        await camera.LatestFrameRelay(0).start()
