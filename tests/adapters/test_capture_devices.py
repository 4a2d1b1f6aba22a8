"""
Unit tests for the capture device and auth adapters.

The sounddevice adapter is exercised through a mocked ``sd`` module, no
audio hardware is touched.
"""

import asyncio
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from adapters.push_capture_device import PushAudioDeviceAdapter, PushDisplayDeviceAdapter
from adapters.sounddevice_audio_device import SoundDeviceMicrophoneAdapter, to_mono_int16
from adapters.static_auth_provider import StaticAuthProviderAdapter
from domain.models import FrameGrab
from ports.auth_provider import AuthProviderPort
from ports.capture_device import AudioDevicePort, DisplayDevicePort
from shared_utils.error_handler import DeviceError


# ======================================================================
# PushAudioDeviceAdapter
# ======================================================================

class TestPushAudioDevice:
    def test_satisfies_port(self) -> None:
        assert isinstance(PushAudioDeviceAdapter(), AudioDevicePort)

    async def test_blocks_in_order(self) -> None:
        device = PushAudioDeviceAdapter()
        await device.open()
        assert device.push(b"\x01\x00")
        assert device.push(b"\x02\x00")
        assert await device.read_block() == b"\x01\x00"
        assert await device.read_block() == b"\x02\x00"

    async def test_read_before_open(self) -> None:
        with pytest.raises(DeviceError, match="device not open"):
            await PushAudioDeviceAdapter().read_block()

    async def test_end_drains_backlog_then_raises(self) -> None:
        device = PushAudioDeviceAdapter()
        await device.open()
        device.push(b"\x01\x00")
        device.end()
        assert await device.read_block() == b"\x01\x00"
        with pytest.raises(DeviceError, match="stream ended"):
            await device.read_block()
        assert device.push(b"\x03\x00") is False

    async def test_backpressure_drops(self) -> None:
        device = PushAudioDeviceAdapter(max_blocks=1)
        assert device.push(b"\x01\x00") is True
        assert device.push(b"\x02\x00") is False
        assert device.dropped_blocks == 1

    async def test_empty_push_ignored(self) -> None:
        assert PushAudioDeviceAdapter().push(b"") is False


# ======================================================================
# PushDisplayDeviceAdapter
# ======================================================================

class TestPushDisplayDevice:
    def test_satisfies_port(self) -> None:
        assert isinstance(PushDisplayDeviceAdapter(), DisplayDevicePort)

    async def test_latest_grab_consumed_once(self) -> None:
        device = PushDisplayDeviceAdapter()
        await device.open()
        device.push(FrameGrab(image=b"old"))
        device.push(FrameGrab(image=b"new"))
        grab = await device.grab_frame()
        assert grab.image == b"new"
        assert await device.grab_frame() is None

    async def test_ended_raises(self) -> None:
        device = PushDisplayDeviceAdapter()
        await device.open()
        device.end()
        with pytest.raises(DeviceError, match="display: stream ended"):
            await device.grab_frame()

    async def test_open_after_end_raises(self) -> None:
        device = PushDisplayDeviceAdapter()
        device.end()
        with pytest.raises(DeviceError):
            await device.open()


# ======================================================================
# SoundDeviceMicrophoneAdapter
# ======================================================================

class TestToMonoInt16:
    def test_stereo_averaged_and_scaled(self) -> None:
        data = np.array([[1.0, 0.0], [-1.0, -1.0]], dtype=np.float32)
        result = to_mono_int16(data)
        assert result.dtype == np.int16
        assert result.tolist() == [16383, -32767]

    def test_clipped(self) -> None:
        assert to_mono_int16(np.array([2.0], dtype=np.float32)).tolist() == [32767]


class TestSoundDeviceMicrophone:
    async def test_missing_library(self) -> None:
        with patch("adapters.sounddevice_audio_device.sd", None):
            with pytest.raises(DeviceError, match="sounddevice not available"):
                await SoundDeviceMicrophoneAdapter().open()

    async def test_callback_feeds_queue(self) -> None:
        mock_sd = MagicMock()
        with patch("adapters.sounddevice_audio_device.sd", mock_sd):
            device = SoundDeviceMicrophoneAdapter(sample_rate=16000)
            await device.open()
            callback = mock_sd.InputStream.call_args[1]["callback"]
            callback(np.zeros((4, 1), dtype=np.float32), 4, None, None)
            block = await asyncio.wait_for(device.read_block(), timeout=1)
            assert block == b"\x00" * 8
            await device.close()
            mock_sd.InputStream.return_value.stop.assert_called_once()

    async def test_open_failure_is_device_error(self) -> None:
        mock_sd = MagicMock()
        mock_sd.InputStream.side_effect = RuntimeError("permission denied")
        with patch("adapters.sounddevice_audio_device.sd", mock_sd):
            with pytest.raises(DeviceError, match="permission denied"):
                await SoundDeviceMicrophoneAdapter().open()


# ======================================================================
# StaticAuthProviderAdapter
# ======================================================================

class TestStaticAuthProvider:
    def test_satisfies_port(self) -> None:
        assert isinstance(StaticAuthProviderAdapter("u1"), AuthProviderPort)

    def test_notifies_on_change_only(self) -> None:
        auth = StaticAuthProviderAdapter("u1")
        seen = []
        auth.subscribe(seen.append)
        auth.set_user("u1")
        auth.set_user(None)
        assert seen == [None]
        assert auth.current_user_id() is None

    def test_unsubscribe(self) -> None:
        auth = StaticAuthProviderAdapter("u1")
        seen = []
        unsubscribe = auth.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        auth.set_user("u2")
        assert seen == []
