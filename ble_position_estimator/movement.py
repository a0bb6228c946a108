from __future__ import annotations

from typing import Optional

from .models import Position


class MovementDetector:
    """连续两次位置间距超过 threshold 即判定为移动中"""

    def __init__(self, threshold: float = 0.2):
        if not threshold >= 0:
            raise ValueError(f"Movement threshold must be non-negative, got {threshold}.")
        self.threshold = threshold

    def is_moving(self, current: Optional[Position], previous: Optional[Position]) -> bool:
        if current is None or previous is None:
            return False
        return current.distance_to(previous) > self.threshold
