"""Property-based tests for bitrate planning.

The planner is pure arithmetic, so every property is checked without
touching an encoder.
"""

import pytest
from hypothesis import given, settings, strategies as st

from discompress.modules.compression.planner import (
    DEFAULT_FLOOR_TOTAL_KBPS,
    DEFAULT_FLOOR_VIDEO_KBPS,
    DEFAULT_RETRY_FLOOR_VIDEO_KBPS,
    BitratePlan,
    pass_video_kbps,
    plan_bitrate,
)

duration_strategy = st.floats(min_value=1.0, max_value=24 * 3600.0, allow_nan=False)
target_strategy = st.integers(min_value=1, max_value=4 * 1024 * 1024 * 1024)
audio_strategy = st.integers(min_value=0, max_value=512)


class TestPlanBitrate:
    """Property tests for plan_bitrate."""

    @given(duration=duration_strategy, target_bytes=target_strategy, audio_kbps=audio_strategy)
    @settings(max_examples=200)
    def test_video_bitrate_never_below_floor(
        self, duration: float, target_bytes: int, audio_kbps: int
    ) -> None:
        plan = plan_bitrate(duration, target_bytes, audio_kbps)

        assert plan.initial_video_kbps >= DEFAULT_FLOOR_VIDEO_KBPS
        assert plan.total_kbps >= DEFAULT_FLOOR_TOTAL_KBPS

    @given(duration=duration_strategy, target_bytes=target_strategy, audio_kbps=audio_strategy)
    @settings(max_examples=200)
    def test_plan_is_deterministic(self, duration: float, target_bytes: int, audio_kbps: int) -> None:
        assert plan_bitrate(duration, target_bytes, audio_kbps) == plan_bitrate(
            duration, target_bytes, audio_kbps
        )

    @given(target_bytes=st.integers(min_value=1, max_value=50 * 1024 * 1024))
    @settings(max_examples=100)
    def test_very_long_inputs_clamp_to_total_floor(self, target_bytes: int) -> None:
        plan = plan_bitrate(1_000_000.0, target_bytes, 96)

        assert plan.total_kbps == DEFAULT_FLOOR_TOTAL_KBPS
        assert plan.initial_video_kbps == DEFAULT_FLOOR_TOTAL_KBPS - 96

    def test_audio_heavier_than_total_uses_video_floor(self) -> None:
        plan = plan_bitrate(600.0, 1024 * 1024, 320)

        assert plan.total_kbps == 200
        assert plan.initial_video_kbps == DEFAULT_FLOOR_VIDEO_KBPS

    def test_thirty_second_clip_at_default_budget(self) -> None:
        target_bytes = int(9.8 * 1024 * 1024)

        plan = plan_bitrate(30.0, target_bytes, 96)

        assert target_bytes == 10_276_044
        assert plan.total_kbps == 2740
        assert plan.initial_video_kbps == 2644
        assert plan.audio_kbps == 96

    def test_custom_floors(self) -> None:
        plan = plan_bitrate(
            10_000.0, 1024, 96, floor_total_kbps=180, floor_video_kbps=100
        )

        assert plan.total_kbps == 180
        assert plan.initial_video_kbps == 100

    @pytest.mark.parametrize("duration,target", [(0, 1024), (-1.0, 1024), (10.0, 0), (10.0, -5)])
    def test_rejects_non_positive_inputs(self, duration: float, target: int) -> None:
        with pytest.raises(ValueError):
            plan_bitrate(duration, target, 96)


class TestPassVideoKbps:
    """Bitrate applied on each pass of the schedule."""

    @given(initial=st.integers(min_value=64, max_value=100_000), factor=st.floats(min_value=0.01, max_value=1.0))
    @settings(max_examples=100)
    def test_first_pass_uses_planned_bitrate_exactly(self, initial: int, factor: float) -> None:
        plan = BitratePlan(total_kbps=initial + 96, initial_video_kbps=initial, audio_kbps=96)

        assert pass_video_kbps(plan, 0, factor) == initial

    @given(
        initial=st.integers(min_value=64, max_value=100_000),
        index=st.integers(min_value=1, max_value=10),
        factor=st.floats(min_value=0.01, max_value=1.0),
    )
    @settings(max_examples=100)
    def test_later_passes_respect_retry_floor(self, initial: int, index: int, factor: float) -> None:
        plan = BitratePlan(total_kbps=initial + 96, initial_video_kbps=initial, audio_kbps=96)

        kbps = pass_video_kbps(plan, index, factor)

        assert kbps >= DEFAULT_RETRY_FLOOR_VIDEO_KBPS
        assert kbps <= initial

    def test_later_pass_floors_product(self) -> None:
        plan = BitratePlan(total_kbps=2740, initial_video_kbps=2644, audio_kbps=96)

        assert pass_video_kbps(plan, 1, 0.82) == 2168
        assert pass_video_kbps(plan, 2, 0.68) == 1797
        assert pass_video_kbps(plan, 3, 0.56) == 1480

    def test_retry_floor_applies_to_tiny_plans(self) -> None:
        plan = BitratePlan(total_kbps=200, initial_video_kbps=64, audio_kbps=96)

        assert pass_video_kbps(plan, 3, 0.56) == 48
        assert pass_video_kbps(plan, 3, 0.56, retry_floor_kbps=64) == 64
