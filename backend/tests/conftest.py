"""Shared fixtures for the compression test-suite.

No real ffmpeg is needed: FakeTranscoder stands in for probe/encode and
writes output files of scripted sizes.
"""

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from discompress.core.config import Settings
from discompress.modules.compression.ffmpeg import EncodeParams, MediaInfo
from discompress.modules.compression.models import EncodeError, ProbeError


class FakeTranscoder:
    """Scripted stand-in for FFmpegTranscoder.

    Args:
        sizes: Output size in bytes for each successive encode call
        duration: Duration reported by probe (None mimics a missing value)
        fail_at: Encode call index that raises EncodeError
        probe_error: Make probe raise ProbeError
        gate: Optional event every encode waits on before finishing
    """

    def __init__(
        self,
        sizes: Optional[list[int]] = None,
        duration: Optional[float] = 30.0,
        fail_at: Optional[int] = None,
        probe_error: bool = False,
        gate: Optional[asyncio.Event] = None,
    ):
        self.sizes = sizes or [100]
        self.duration = duration
        self.fail_at = fail_at
        self.probe_error = probe_error
        self.gate = gate
        self.calls: list[EncodeParams] = []
        self.probed: list[Path] = []
        self.started = asyncio.Event()

    async def probe(self, input_path: Path) -> MediaInfo:
        self.probed.append(input_path)
        if self.probe_error:
            raise ProbeError("not a media file", diagnostic="Invalid data found when processing input")
        return MediaInfo(duration=self.duration, width=1920, height=1080, format_name="mov,mp4")

    async def encode(self, params: EncodeParams) -> None:
        index = len(self.calls)
        self.calls.append(params)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if index == self.fail_at:
            raise EncodeError("ffmpeg exited with code 1", diagnostic="Conversion failed!")
        size = self.sizes[min(index, len(self.sizes) - 1)]
        params.output_path.write_bytes(b"\0" * size)


@pytest.fixture
def make_settings(tmp_path):
    """Settings rooted in a per-test temp dir; overrides via keyword args."""

    def _make(**overrides) -> Settings:
        values = {
            "TMP_DIR": str(tmp_path / "work"),
            "CLEANUP_DELAY_SECONDS": 0.0,
            # ~1 KiB budget keeps fake outputs tiny
            "TARGET_MB": 0.001,
            "METRICS_ENABLED": False,
            "LOG_JSON": True,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def fake_transcoder_factory():
    return FakeTranscoder


@pytest.fixture
def source_file(tmp_path) -> Path:
    path = tmp_path / "clip.mov"
    path.write_bytes(b"fake-video-bytes" * 64)
    return path
