"""
Capture sources: turn device streams into timestamped domain data.

    AudioCaptureSource   PCM blocks -> level signal + ~1 s WAV chunks
    ScreenCaptureSource  periodic frame grabs -> CaptureFrame
    FrameBuffer          bounded ring buffer of recent frames

Each source owns one asyncio task. The device is acquired when the task
starts and released on every exit path (stop, device error, cancellation).
A DeviceError is terminal for that source only.
"""

from __future__ import annotations

import asyncio
import contextlib
import io
import uuid
import wave
from collections import deque
from typing import AsyncIterator, Callable, Deque, List, Optional

import numpy as np

from domain.models import AudioChunk, CaptureFrame, CaptureState
from ports.capture_device import AudioDevicePort, DisplayDevicePort
from shared_utils.clock import Clock
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import DeviceError
from shared_utils.logging_utils import ContextualLogger
from shared_utils.timers import cancel_task


logger = ContextualLogger(scope=LogScope.CAPTURE)

ErrorCallback = Callable[[DeviceError], None]

_SILENCE_FLOOR_DB = -60.0


# ---------------------------------------------------------------------------
# Signal helpers
# ---------------------------------------------------------------------------


def pcm_level(pcm: bytes) -> float:
    """Loudness of int16 PCM on a 0-100 scale (-60 dBFS and below map to 0)."""
    samples = np.frombuffer(pcm, dtype=np.int16)
    if samples.size == 0:
        return 0.0
    rms = float(np.sqrt(np.mean(np.square(samples.astype(np.float64))))) / 32768.0
    if rms <= 0.0:
        return 0.0
    db = 20.0 * np.log10(rms)
    return float(np.clip((db - _SILENCE_FLOOR_DB) / -_SILENCE_FLOOR_DB * 100.0, 0.0, 100.0))


def wrap_wav(pcm: bytes, sample_rate: int) -> bytes:
    """Wrap mono int16 PCM in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)  # int16
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buffer.getvalue()


@contextlib.asynccontextmanager
async def acquired(device) -> AsyncIterator[None]:
    """Open *device* for the duration of the block and always close it."""
    await device.open()
    try:
        yield
    finally:
        try:
            await device.close()
        except Exception as exc:
            logger.warning("device_close_failed", device=type(device).__name__, error=str(exc))


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class _CaptureSource:
    """State machine shared by both sources: idle -> running -> stopped | failed."""

    name = "capture"

    def __init__(self, clock: Clock, on_error: Optional[ErrorCallback]) -> None:
        self._clock = clock
        self._on_error = on_error
        self._task: Optional[asyncio.Task] = None
        self.state = CaptureState.IDLE
        self.error: Optional[DeviceError] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self.state = CaptureState.RUNNING
        self.error = None
        self._task = asyncio.create_task(self._supervise(), name=f"capture:{self.name}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        await cancel_task(task)
        if self.state == CaptureState.RUNNING:
            self.state = CaptureState.STOPPED

    async def _supervise(self) -> None:
        try:
            await self._run()
        except asyncio.CancelledError:
            if self.state == CaptureState.RUNNING:
                self.state = CaptureState.STOPPED
            raise
        except Exception as exc:
            if not isinstance(exc, DeviceError):
                exc = DeviceError(self.name, str(exc) or type(exc).__name__, context={"cause": type(exc).__name__})
            self._fail(exc)
            return
        if self.state == CaptureState.RUNNING:
            self.state = CaptureState.STOPPED

    def _fail(self, error: DeviceError) -> None:
        self.state = CaptureState.FAILED
        self.error = error
        logger.error("capture_source_failed", source=self.name, error=error.message)
        if self._on_error is not None:
            self._on_error(error)

    async def _run(self) -> None:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------


class AudioCaptureSource(_CaptureSource):
    """Reads PCM blocks, reports a level per block and emits fixed-length chunks.

    ``on_chunk`` receives an AudioChunk whose ``timestamp_ms`` is the time the
    first block of the chunk arrived.
    """

    name = "audio"

    def __init__(
        self,
        device: AudioDevicePort,
        clock: Clock,
        on_chunk: Callable[[AudioChunk], None],
        on_level: Optional[Callable[[float], None]] = None,
        on_error: Optional[ErrorCallback] = None,
        chunk_seconds: float = Defaults.AUDIO_CHUNK_SECONDS,
    ) -> None:
        super().__init__(clock, on_error)
        self._device = device
        self._on_chunk = on_chunk
        self._on_level = on_level
        self._chunk_seconds = chunk_seconds
        self.level = 0.0
        self.chunks_emitted = 0

    async def _run(self) -> None:
        async with acquired(self._device):
            sample_rate = self._device.sample_rate
            chunk_bytes = max(2, int(sample_rate * self._chunk_seconds)) * 2
            buffer = bytearray()
            chunk_start_ms: Optional[int] = None
            logger.info("audio_capture_started", sample_rate=sample_rate)

            while True:
                block = await self._device.read_block()
                if not block:
                    continue
                if chunk_start_ms is None:
                    chunk_start_ms = self._clock.now_ms()

                self.level = pcm_level(block)
                if self._on_level is not None:
                    self._on_level(self.level)

                buffer.extend(block)
                while len(buffer) >= chunk_bytes:
                    pcm = bytes(buffer[:chunk_bytes])
                    del buffer[:chunk_bytes]
                    self._emit(pcm, sample_rate, chunk_start_ms)
                    chunk_start_ms = self._clock.now_ms() if buffer else None

    def _emit(self, pcm: bytes, sample_rate: int, timestamp_ms: int) -> None:
        self.chunks_emitted += 1
        chunk = AudioChunk(
            audio=wrap_wav(pcm, sample_rate),
            timestamp_ms=timestamp_ms,
            duration_ms=int(len(pcm) / 2 / sample_rate * 1000),
            level=pcm_level(pcm),
            sample_rate=sample_rate,
        )
        self._on_chunk(chunk)


# ---------------------------------------------------------------------------
# Screen
# ---------------------------------------------------------------------------


class FrameBuffer:
    """Ring buffer holding the most recent frames (oldest evicted first)."""

    def __init__(self, capacity: int = Defaults.FRAME_BUFFER_SIZE) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._frames: Deque[CaptureFrame] = deque(maxlen=capacity)

    def add(self, frame: CaptureFrame) -> None:
        self._frames.append(frame)

    def latest(self) -> Optional[CaptureFrame]:
        return self._frames[-1] if self._frames else None

    def frames(self) -> List[CaptureFrame]:
        return list(self._frames)

    def clear(self) -> None:
        self._frames.clear()

    def __len__(self) -> int:
        return len(self._frames)


class ScreenCaptureSource(_CaptureSource):
    """Grabs a frame immediately and then every ``interval_seconds``."""

    name = "screen"

    def __init__(
        self,
        device: DisplayDevicePort,
        clock: Clock,
        on_frame: Callable[[CaptureFrame], None],
        on_error: Optional[ErrorCallback] = None,
        interval_seconds: float = Defaults.SCREEN_CAPTURE_INTERVAL,
    ) -> None:
        super().__init__(clock, on_error)
        self._device = device
        self._on_frame = on_frame
        self._interval = interval_seconds
        self.frames_captured = 0

    async def _run(self) -> None:
        async with acquired(self._device):
            logger.info("screen_capture_started", interval_seconds=self._interval)
            while True:
                grab = await self._device.grab_frame()
                if grab is not None:
                    self.frames_captured += 1
                    self._on_frame(
                        CaptureFrame(
                            frame_id=str(uuid.uuid4()),
                            image=grab.image,
                            mime_type=grab.mime_type,
                            timestamp_ms=self._clock.now_ms(),
                            window_title=grab.window_title,
                            application=grab.application,
                        )
                    )
                await self._clock.sleep(self._interval)
