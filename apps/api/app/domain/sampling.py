"""Key-frame sampling and probe-derived attribute math."""

from __future__ import annotations

import math


def sampling_interval(duration: int, max_frames: int = 20) -> int:
    """Seconds between sampled frames so that roughly ``max_frames`` are taken."""
    return max(1, duration // max_frames)


def sampling_timestamps(duration: int, max_frames: int = 20) -> list[int]:
    """Offsets ``0, interval, 2*interval, ...`` strictly below ``duration``."""
    if duration <= 0:
        return []
    return list(range(0, duration, sampling_interval(duration, max_frames)))


def frame_rate_from_ratio(numerator: int, denominator: int) -> float:
    if denominator == 0:
        raise ValueError("Frame rate denominator is zero")
    return numerator / denominator


def total_frame_count(duration: int, frame_rate: float) -> int:
    return math.floor(duration * frame_rate)


def format_timestamp(seconds: int) -> str:
    """Render whole seconds as ``m:ss``."""
    minutes, remaining = divmod(int(seconds), 60)
    return f"{minutes}:{remaining:02d}"
