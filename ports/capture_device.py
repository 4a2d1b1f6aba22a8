"""
Port interfaces for capture devices.

Only the data contract is modelled here: an audio device yields mono int16
PCM blocks, a display device yields picture grabs. Both are acquired with
open() and must be released with close(); failures raise DeviceError.

Implementations: PushAudioDeviceAdapter, PushDisplayDeviceAdapter,
SoundDeviceMicrophoneAdapter (adapters/)
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from domain.models import FrameGrab


@runtime_checkable
class AudioDevicePort(Protocol):
    """Microphone-like source of PCM blocks."""

    sample_rate: int

    async def open(self) -> None:
        """Acquire the device (may prompt for permission).

        Raises:
            DeviceError: If access is denied or no device exists.
        """
        ...

    async def read_block(self) -> bytes:
        """Wait for the next block of mono int16 little-endian PCM.

        Raises:
            DeviceError: If the stream ended or broke.
        """
        ...

    async def close(self) -> None:
        """Release the device. Safe to call more than once."""
        ...


@runtime_checkable
class DisplayDevicePort(Protocol):
    """Screen-share-like source of frames."""

    async def open(self) -> None:
        """Acquire the display stream.

        Raises:
            DeviceError: If access is denied.
        """
        ...

    async def grab_frame(self) -> Optional[FrameGrab]:
        """Return the current picture, or None if nothing is available yet.

        Raises:
            DeviceError: If the stream ended or broke.
        """
        ...

    async def close(self) -> None:
        """Release the stream. Safe to call more than once."""
        ...
