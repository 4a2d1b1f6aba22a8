"""
Microphone adapter backed by sounddevice (PortAudio).

The PortAudio callback runs on its own thread; blocks are handed to the event
loop with ``call_soon_threadsafe`` and dropped under backpressure.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import numpy as np

try:
    import sounddevice as sd
except OSError:  # PortAudio library missing
    sd = None

from ports.capture_device import AudioDevicePort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import DeviceError
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.CAPTURE)


def to_mono_int16(data: np.ndarray) -> np.ndarray:
    """Convert float32/other shaped buffers to mono int16."""
    data_f32 = data.astype(np.float32, copy=False)
    if data_f32.ndim == 2 and data_f32.shape[1] > 1:
        data_f32 = data_f32.mean(axis=1)
    return np.clip(data_f32.reshape(-1) * 32767.0, -32768, 32767).astype(np.int16)


def _queue_put_safe(q: asyncio.Queue, data: bytes) -> None:
    try:
        q.put_nowait(data)
    except asyncio.QueueFull:
        # drop if backpressure
        pass


class SoundDeviceMicrophoneAdapter:
    """Default (or chosen) input device as an AudioDevicePort."""

    def __init__(
        self,
        device: Optional[int] = None,
        sample_rate: int = Defaults.AUDIO_SAMPLE_RATE,
        block_seconds: float = Defaults.AUDIO_BLOCK_SECONDS,
        max_blocks: int = 100,
    ) -> None:
        self.sample_rate = sample_rate
        self._device = device
        self._blocksize = max(1, int(sample_rate * block_seconds))
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_blocks)
        self._stream = None

    async def open(self) -> None:
        if sd is None:
            raise DeviceError("microphone", "sounddevice not available")
        if self._stream is not None:
            return

        loop = asyncio.get_running_loop()
        queue = self._queue

        def _callback(indata, frames, time, status):  # noqa: ANN001 - external callback signature
            if status:
                logger.debug("microphone_status", status=str(status))
            loop.call_soon_threadsafe(_queue_put_safe, queue, to_mono_int16(indata).tobytes())

        try:
            stream = sd.InputStream(
                device=self._device,
                channels=1,
                dtype="float32",
                samplerate=self.sample_rate,
                blocksize=self._blocksize,
                callback=_callback,
            )
            stream.start()
        except Exception as exc:
            raise DeviceError("microphone", f"could not open input stream: {exc}") from exc

        self._stream = stream
        logger.info("microphone_opened", device=self._device, sample_rate=self.sample_rate)

    async def read_block(self) -> bytes:
        if self._stream is None:
            raise DeviceError("microphone", "device not open")
        return await self._queue.get()

    async def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as exc:
            logger.warning("microphone_close_failed", error=str(exc))
        logger.info("microphone_closed")
