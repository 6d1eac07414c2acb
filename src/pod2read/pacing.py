"""Reading-speed presets."""

from __future__ import annotations

from typing import List

from .config import DEFAULT_WPM

SPEED_STEPS: List[int] = [150, 200, 250, 300, 400, 500, 600]


def speed_label(wpm: float) -> str:
    if wpm <= 150:
        return "Relaxed"
    if wpm <= 300:
        return "Normal"
    if wpm <= 450:
        return "Fast"
    return "Speed"


def next_speed(current: int) -> int:
    """One preset faster; speeds that are not presets reset to the default."""
    if current not in SPEED_STEPS:
        return DEFAULT_WPM
    return SPEED_STEPS[min(SPEED_STEPS.index(current) + 1, len(SPEED_STEPS) - 1)]


def prev_speed(current: int) -> int:
    if current not in SPEED_STEPS:
        return DEFAULT_WPM
    return SPEED_STEPS[max(SPEED_STEPS.index(current) - 1, 0)]
