"""Compression module for size-targeted video re-encoding.

Probes an uploaded video, plans a bitrate that fills the byte budget,
re-encodes with ffmpeg over a shrinking bitrate schedule, and streams the
result back while bounding concurrent encodes.
"""

from discompress.modules.compression.cleanup import CleanupScheduler, remove_files
from discompress.modules.compression.controller import SizeTargetingController
from discompress.modules.compression.ffmpeg import EncodeParams, FFmpegTranscoder, MediaInfo
from discompress.modules.compression.models import (
    Attempt,
    CompressionError,
    CompressionJob,
    EncodeError,
    JobStatus,
    ProbeError,
    UploadError,
    sanitize_filename,
)
from discompress.modules.compression.planner import BitratePlan, pass_video_kbps, plan_bitrate
from discompress.modules.compression.queue import AdmissionQueue
from discompress.modules.compression.schemas import DEFAULT_PASS_FACTORS, PassSchedule
from discompress.modules.compression.service import CompressionService

__all__ = [
    # Models
    "Attempt",
    "CompressionJob",
    "JobStatus",
    "sanitize_filename",
    # Errors
    "CompressionError",
    "UploadError",
    "ProbeError",
    "EncodeError",
    # Planning
    "BitratePlan",
    "plan_bitrate",
    "pass_video_kbps",
    "PassSchedule",
    "DEFAULT_PASS_FACTORS",
    # Encoding
    "FFmpegTranscoder",
    "EncodeParams",
    "MediaInfo",
    "SizeTargetingController",
    # Scheduling
    "AdmissionQueue",
    "CleanupScheduler",
    "remove_files",
    # Service
    "CompressionService",
]
