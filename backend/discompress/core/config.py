"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
Every value is optional; defaults match the public deployment.
"""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


def validate_pass_factors(factors: list[float]) -> list[float]:
    """Check a bitrate pass schedule.

    Non-empty, starts at exactly 1.0, every factor in (0, 1], never increasing.

    Raises:
        ValueError: On the first rule the schedule breaks
    """
    if not factors:
        raise ValueError("schedule must contain at least one factor")
    if factors[0] != 1.0:
        raise ValueError("first factor must be exactly 1.0")
    for factor in factors:
        if not 0 < factor <= 1:
            raise ValueError(f"factor {factor} outside (0, 1]")
    for previous, current in zip(factors, factors[1:]):
        if current > previous:
            raise ValueError("factors must be non-increasing")
    return factors


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "Discompress API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Temporary storage for uploads and encode outputs
    TMP_DIR: str = "./tmp"
    CLEANUP_DELAY_SECONDS: float = 12.0

    # Size targeting
    TARGET_MB: float = 9.8
    AUDIO_KBPS: int = 96
    MAX_WIDTH: int = 1280
    MAX_UPLOAD_MB: int = 300
    PASS_FACTORS: list[float] = [1.00, 0.82, 0.68, 0.56]
    FLOOR_TOTAL_KBPS: int = 200
    FLOOR_VIDEO_KBPS: int = 64
    RETRY_FLOOR_VIDEO_KBPS: int = 48

    # Encoder
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    ENCODE_PRESET: str = "veryfast"
    ENCODER_THREADS: int = 1  # 0 lets ffmpeg pick
    MAXRATE_FACTOR: float = 1.2
    BUFSIZE_FACTOR: float = 2.0

    # Admission queue
    MAX_CONCURRENT_ENCODES: int = 1

    # CORS
    CORS_ORIGINS: list[str] = ["https://owenk944.github.io"]

    # Observability
    LOG_JSON: bool = True
    METRICS_ENABLED: bool = False
    TRACING_ENABLED: bool = False
    OTLP_ENDPOINT: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @field_validator("TARGET_MB", "MAX_UPLOAD_MB")
    @classmethod
    def _positive_size(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("size limits must be greater than 0")
        return value

    @field_validator("PASS_FACTORS")
    @classmethod
    def _valid_schedule(cls, value: list[float]) -> list[float]:
        return validate_pass_factors(value)

    @field_validator("MAX_CONCURRENT_ENCODES")
    @classmethod
    def _positive_capacity(cls, value: int) -> int:
        if value < 1:
            raise ValueError("MAX_CONCURRENT_ENCODES must be at least 1")
        return value

    @property
    def target_bytes(self) -> int:
        """Size budget in bytes (MiB based, floored)."""
        return int(self.TARGET_MB * 1024 * 1024)

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_MB * 1024 * 1024


settings = Settings()
