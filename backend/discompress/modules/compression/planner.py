"""Bitrate planning for size-targeted encodes.

Pure arithmetic: given a duration and a byte budget, work out how many
kilobits per second the encoder may spend, and how that shrinks on
later passes.
"""

from dataclasses import dataclass

DEFAULT_FLOOR_TOTAL_KBPS = 200
DEFAULT_FLOOR_VIDEO_KBPS = 64
DEFAULT_RETRY_FLOOR_VIDEO_KBPS = 48


@dataclass(frozen=True)
class BitratePlan:
    """Bitrate split for the first encode pass."""
    total_kbps: int
    initial_video_kbps: int
    audio_kbps: int


def plan_bitrate(
    duration_seconds: float,
    target_bytes: int,
    audio_kbps: int,
    *,
    floor_total_kbps: int = DEFAULT_FLOOR_TOTAL_KBPS,
    floor_video_kbps: int = DEFAULT_FLOOR_VIDEO_KBPS,
) -> BitratePlan:
    """Compute the total and video bitrate that fill the byte budget.

    Args:
        duration_seconds: Media duration, already floored to at least 1s
        target_bytes: Output size budget in bytes
        audio_kbps: Audio bitrate reserved out of the total
        floor_total_kbps: Minimum total bitrate ever requested
        floor_video_kbps: Minimum video bitrate ever requested

    Returns:
        BitratePlan for the first pass

    Raises:
        ValueError: If duration or target is not positive
    """
    if duration_seconds <= 0:
        raise ValueError("duration_seconds must be greater than 0")
    if target_bytes <= 0:
        raise ValueError("target_bytes must be greater than 0")

    total_kbps = max(floor_total_kbps, int(target_bytes * 8 / duration_seconds / 1000))
    initial_video_kbps = max(floor_video_kbps, total_kbps - audio_kbps)
    return BitratePlan(
        total_kbps=total_kbps,
        initial_video_kbps=initial_video_kbps,
        audio_kbps=audio_kbps,
    )


def pass_video_kbps(
    plan: BitratePlan,
    index: int,
    factor: float,
    retry_floor_kbps: int = DEFAULT_RETRY_FLOOR_VIDEO_KBPS,
) -> int:
    """Video bitrate for pass ``index`` of the schedule.

    The first pass uses the planned bitrate untouched.
    """
    if index == 0:
        return plan.initial_video_kbps
    return max(retry_floor_kbps, int(plan.initial_video_kbps * factor))
