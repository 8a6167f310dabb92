"""FFmpeg probing and encoding.

Wraps ffprobe/ffmpeg as asyncio subprocesses so a job awaits each call
without blocking other requests on the event loop.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from discompress.modules.compression.models import EncodeError, ProbeError

logger = logging.getLogger(__name__)

# Only the tail of ffmpeg stderr is kept as a diagnostic.
DIAGNOSTIC_TAIL_CHARS = 4000


@dataclass
class MediaInfo:
    """Structural metadata reported by ffprobe."""
    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None
    format_name: Optional[str] = None

    @property
    def effective_duration(self) -> float:
        """Duration floored to one second so bitrate math never divides by zero."""
        return max(1.0, self.duration or 1.0)


@dataclass
class EncodeParams:
    """Parameters for a single encoder invocation."""
    input_path: Path
    output_path: Path
    video_kbps: int
    audio_kbps: int
    max_width: int


class FFmpegTranscoder:
    """Size-constrained H.264/AAC MP4 encoder backed by ffmpeg."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        preset: str = "veryfast",
        threads: int = 1,
        maxrate_factor: float = 1.2,
        bufsize_factor: float = 2.0,
    ):
        """Initialize transcoder.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
            preset: x264 speed preset
            threads: Encoder thread count, 0 leaves it to ffmpeg
            maxrate_factor: Peak bitrate as a multiple of the target
            bufsize_factor: Rate control buffer as a multiple of the target
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.preset = preset
        self.threads = threads
        self.maxrate_factor = maxrate_factor
        self.bufsize_factor = bufsize_factor

    async def probe(self, input_path: Path) -> MediaInfo:
        """Read container and stream metadata with ffprobe.

        Raises:
            ProbeError: If the file is unreadable or not a media container
        """
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(input_path),
        ]
        try:
            returncode, stdout, stderr = await _run(cmd)
        except OSError as e:
            raise ProbeError(f"Could not start ffprobe: {e}", diagnostic=str(e)) from e

        if returncode != 0:
            raise ProbeError(
                f"ffprobe exited with code {returncode}",
                diagnostic=stderr[-DIAGNOSTIC_TAIL_CHARS:],
            )

        try:
            data = json.loads(stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError("ffprobe returned malformed JSON", diagnostic=str(e)) from e

        fmt = data.get("format") or {}
        if not fmt and not data.get("streams"):
            raise ProbeError("No media format detected", diagnostic=stderr[-DIAGNOSTIC_TAIL_CHARS:])

        info = MediaInfo(format_name=fmt.get("format_name"))
        try:
            info.duration = float(fmt["duration"]) if fmt.get("duration") else None
        except (TypeError, ValueError):
            info.duration = None

        for stream in data.get("streams", []):
            if stream.get("codec_type") == "video":
                info.width = stream.get("width")
                info.height = stream.get("height")
                break

        return info

    def build_encode_command(self, params: EncodeParams) -> list[str]:
        """Build the ffmpeg command line for one encode attempt.

        Args:
            params: Encode parameters

        Returns:
            FFmpeg command as list of arguments
        """
        video_kbps = params.video_kbps
        cmd = [
            self.ffmpeg_path,
            "-y",
            "-i", str(params.input_path),
            # Video settings
            "-c:v", "libx264",
            "-b:v", f"{video_kbps}k",
            "-maxrate", f"{int(video_kbps * self.maxrate_factor)}k",
            "-bufsize", f"{int(video_kbps * self.bufsize_factor)}k",
            "-vf", f"scale='min({params.max_width},iw)':-2",
            "-pix_fmt", "yuv420p",
            "-preset", self.preset,
            "-profile:v", "main",
            "-level", "4.0",
            # Audio settings
            "-c:a", "aac",
            "-b:a", f"{params.audio_kbps}k",
            # Output format
            "-movflags", "+faststart",
        ]

        if self.threads > 0:
            cmd.extend(["-threads", str(self.threads)])

        cmd.extend(["-f", "mp4", str(params.output_path)])
        return cmd

    async def encode(self, params: EncodeParams) -> None:
        """Run one encode to completion.

        Raises:
            EncodeError: If ffmpeg cannot start or exits non-zero. The
                partial output, if any, is removed so it is never measured.
        """
        cmd = self.build_encode_command(params)
        logger.debug("Running ffmpeg", extra={"command": cmd})

        try:
            returncode, _, stderr = await _run(cmd)
        except OSError as e:
            raise EncodeError(f"Could not start ffmpeg: {e}", diagnostic=str(e)) from e

        if returncode != 0:
            params.output_path.unlink(missing_ok=True)
            raise EncodeError(
                f"ffmpeg exited with code {returncode}",
                diagnostic=stderr[-DIAGNOSTIC_TAIL_CHARS:],
            )


async def _run(cmd: list[str]) -> tuple[int, str, str]:
    """Run a command and collect its output; kill it if we get cancelled."""
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise
    return (
        process.returncode,
        stdout.decode("utf-8", errors="ignore"),
        stderr.decode("utf-8", errors="ignore"),
    )
