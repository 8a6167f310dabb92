"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from discompress.core.config import Settings


class TestSettings:

    def test_defaults(self, monkeypatch) -> None:
        for name in ("TARGET_MB", "AUDIO_KBPS", "MAX_WIDTH", "PORT", "CORS_ORIGINS"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.TARGET_MB == 9.8
        assert settings.AUDIO_KBPS == 96
        assert settings.MAX_WIDTH == 1280
        assert settings.PORT == 3000
        assert settings.PASS_FACTORS == [1.0, 0.82, 0.68, 0.56]
        assert settings.CORS_ORIGINS == ["https://owenk944.github.io"]

    def test_target_bytes_uses_binary_megabytes(self) -> None:
        settings = Settings(_env_file=None, TARGET_MB=9.8)

        assert settings.target_bytes == 10_276_044

    def test_environment_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("MAX_CONCURRENT_ENCODES", "3")
        monkeypatch.setenv("CORS_ORIGINS", '["http://localhost:5173"]')

        settings = Settings(_env_file=None)

        assert settings.PORT == 8080
        assert settings.MAX_CONCURRENT_ENCODES == 3
        assert settings.CORS_ORIGINS == ["http://localhost:5173"]

    @pytest.mark.parametrize(
        "field,value",
        [("TARGET_MB", 0), ("TARGET_MB", -1.5), ("MAX_UPLOAD_MB", 0), ("MAX_CONCURRENT_ENCODES", 0)],
    )
    def test_rejects_non_positive_limits(self, field: str, value) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    @pytest.mark.parametrize(
        "factors",
        [[], [0.9, 0.8], [1.0, 1.2], [1.0, 0.5, 0.7], [1.0, 0.0]],
    )
    def test_rejects_invalid_pass_schedule(self, factors: list[float]) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, PASS_FACTORS=factors)

    def test_invalid_pass_schedule_from_environment_fails_at_load(self, monkeypatch) -> None:
        monkeypatch.setenv("PASS_FACTORS", "[1.0, 0.9, 0.95]")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_custom_pass_schedule_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("PASS_FACTORS", "[1.0, 0.85, 0.72]")

        assert Settings(_env_file=None).PASS_FACTORS == [1.0, 0.85, 0.72]
