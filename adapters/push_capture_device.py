"""
Push-fed capture devices.

Used when capture happens on a client (browser, desktop app) and reaches the
service over HTTP: the API pushes PCM blocks and screen grabs in, the capture
sources read them out through the regular device ports.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from domain.models import FrameGrab
from ports.capture_device import AudioDevicePort, DisplayDevicePort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import DeviceError
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.ADAPTER)

_END_OF_STREAM = b""


class PushAudioDeviceAdapter:
    """Audio device fed by ``push()``; ``end()`` terminates the stream."""

    def __init__(self, sample_rate: int = Defaults.AUDIO_SAMPLE_RATE, max_blocks: int = 600) -> None:
        self.sample_rate = sample_rate
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_blocks)
        self._opened = False
        self._ended = False
        self.dropped_blocks = 0

    async def open(self) -> None:
        if self._ended:
            raise DeviceError("microphone", "stream already ended")
        self._opened = True

    def push(self, pcm: bytes) -> bool:
        """Queue one block of mono int16 PCM. Returns False if it was dropped."""
        if self._ended or not pcm:
            return False
        try:
            self._queue.put_nowait(pcm)
        except asyncio.QueueFull:
            # drop if backpressure
            self.dropped_blocks += 1
            logger.warning("audio_block_dropped", dropped=self.dropped_blocks)
            return False
        return True

    def end(self) -> None:
        """Signal that the client stopped sending audio."""
        if self._ended:
            return
        self._ended = True
        try:
            self._queue.put_nowait(_END_OF_STREAM)
        except asyncio.QueueFull:
            # The reader sees _ended once the backlog drains
            pass

    async def read_block(self) -> bytes:
        if not self._opened:
            raise DeviceError("microphone", "device not open")
        if self._ended and self._queue.empty():
            raise DeviceError("microphone", "stream ended")
        block = await self._queue.get()
        if block == _END_OF_STREAM:
            raise DeviceError("microphone", "stream ended")
        return block

    async def close(self) -> None:
        self._opened = False


class PushDisplayDeviceAdapter:
    """Display device exposing the most recently pushed picture."""

    def __init__(self) -> None:
        self._latest: Optional[FrameGrab] = None
        self._opened = False
        self._ended = False

    async def open(self) -> None:
        if self._ended:
            raise DeviceError("display", "stream already ended")
        self._opened = True

    def push(self, grab: FrameGrab) -> None:
        if not self._ended:
            self._latest = grab

    def end(self) -> None:
        self._ended = True

    async def grab_frame(self) -> Optional[FrameGrab]:
        if self._ended:
            raise DeviceError("display", "stream ended")
        if not self._opened:
            raise DeviceError("display", "device not open")
        grab, self._latest = self._latest, None
        return grab

    async def close(self) -> None:
        self._opened = False
