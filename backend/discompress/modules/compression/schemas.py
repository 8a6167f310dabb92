"""Pydantic schemas for compression configuration."""

from pydantic import BaseModel, Field, field_validator

from discompress.core.config import validate_pass_factors

DEFAULT_PASS_FACTORS = [1.00, 0.82, 0.68, 0.56]


class PassSchedule(BaseModel):
    """Ordered bitrate multipliers tried one after another.

    The first pass always encodes at the planned bitrate; later passes
    only ever lower it.
    """
    factors: list[float] = Field(
        default_factory=lambda: list(DEFAULT_PASS_FACTORS),
        description="Multipliers applied to the planned video bitrate",
    )

    @field_validator("factors")
    @classmethod
    def validate_factors(cls, value: list[float]) -> list[float]:
        return validate_pass_factors(value)

    def __len__(self) -> int:
        return len(self.factors)

    def steps(self) -> list[tuple[int, float]]:
        """(index, factor) pairs in schedule order."""
        return list(enumerate(self.factors))
