"""In-memory models for compression jobs.

Jobs are never persisted; a job lives exactly as long as the request that
created it plus the deferred cleanup window.
"""

import re
import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

DOWNLOAD_PREFIX = "discompress_"
OUTPUT_EXTENSION = ".mp4"
FALLBACK_NAME = "video"

_DISALLOWED_NAME_CHARS = re.compile(r"[^\w.\- ]+", re.ASCII)
_LAST_EXTENSION = re.compile(r"\.[^.]+$")


class CompressionError(Exception):
    """Base exception for compression errors."""

    pass


class UploadError(CompressionError):
    """Raised when the upload is missing or rejected before processing."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class ProbeError(CompressionError):
    """Raised when the input cannot be read as a media container."""

    def __init__(self, message: str, diagnostic: str = ""):
        super().__init__(message)
        self.diagnostic = diagnostic


class EncodeError(CompressionError):
    """Raised when the encoder exits with an error on any attempt."""

    def __init__(self, message: str, diagnostic: str = ""):
        super().__init__(message)
        self.diagnostic = diagnostic


class JobStatus(str, Enum):
    """Lifecycle of a compression job."""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def sanitize_filename(name: Optional[str]) -> str:
    """Strip everything but ASCII word characters, dots, hyphens and spaces.

    >>> sanitize_filename("../../evil name!.mov")
    '....evil name.mov'
    """
    cleaned = _DISALLOWED_NAME_CHARS.sub("", name or "")
    return cleaned or FALLBACK_NAME


def strip_extension(name: str) -> str:
    return _LAST_EXTENSION.sub("", name)


def new_job_id() -> str:
    """Time-based token with a random suffix, unique per job."""
    return f"{int(time.time() * 1000)}_{secrets.token_hex(4)}"


@dataclass
class Attempt:
    """One encoder invocation within a job."""
    index: int
    factor: float
    video_kbps: int
    audio_kbps: int
    max_width: int
    output_path: Path
    result_bytes: Optional[int] = None

    def within_budget(self, target_bytes: int) -> bool:
        return self.result_bytes is not None and self.result_bytes <= target_bytes


@dataclass
class CompressionJob:
    """One compress-and-deliver request."""
    input_path: Path
    requested_name: str
    target_bytes: int
    job_id: str = field(default_factory=new_job_id)
    status: JobStatus = JobStatus.QUEUED
    attempts: list[Attempt] = field(default_factory=list)
    final_output_path: Optional[Path] = None
    duration_seconds: Optional[float] = None
    cleanup_scheduled: bool = False

    def __post_init__(self) -> None:
        if self.target_bytes <= 0:
            raise ValueError("target_bytes must be greater than 0")
        self.requested_name = sanitize_filename(self.requested_name)

    @property
    def base_name(self) -> str:
        return strip_extension(self.requested_name)

    @property
    def download_name(self) -> str:
        """Suggested filename for the delivered artifact."""
        return f"{DOWNLOAD_PREFIX}{self.base_name}{OUTPUT_EXTENSION}"

    def output_path_for(self, directory: Path, index: int) -> Path:
        return directory / f"{self.job_id}_{index}_{self.download_name}"

    @property
    def final_attempt(self) -> Optional[Attempt]:
        for attempt in reversed(self.attempts):
            if attempt.output_path == self.final_output_path:
                return attempt
        return None

    @property
    def within_target(self) -> bool:
        final = self.final_attempt
        return final is not None and final.within_budget(self.target_bytes)

    def cleanup_paths(self) -> list[Path]:
        """Input plus every attempt output, in creation order."""
        return [self.input_path] + [attempt.output_path for attempt in self.attempts]
