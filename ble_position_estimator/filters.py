from __future__ import annotations

from collections import deque
from typing import Deque, Optional, Tuple

import numpy as np

from .models import Position


class MovingAverage:
    """
    滑动窗口均值滤波：
    保留最近 window_size 个位置，x/y 分别取算术平均。
    样本不足 window_size 时按现有样本数平均。
    """

    def __init__(self, window_size: int):
        if window_size < 1:
            raise ValueError(f"window_size must be at least 1, got {window_size}.")
        self.window_size = window_size
        self._queue: Deque[Tuple[float, float]] = deque()

    def __len__(self) -> int:
        return len(self._queue)

    def add_and_get_average(self, sample: Position) -> Position:
        self._queue.append(sample.as_tuple())
        if len(self._queue) > self.window_size:
            self._queue.popleft()
        return self._average()

    def current_average(self) -> Optional[Position]:
        if not self._queue:
            return None
        return self._average()

    def clear(self) -> None:
        self._queue.clear()

    def _average(self) -> Position:
        x, y = np.asarray(self._queue, dtype=float).mean(axis=0)
        return Position(x=float(x), y=float(y))


class AdaptiveKalman:
    """
    一维自适应卡尔曼滤波（x 轴、y 轴各用一个实例，互不耦合）
    观测噪声 r 按新息平方做指数滑动平均自适应更新。
    """

    def __init__(
        self,
        q: float = 0.01,
        r: float = 0.5,
        alpha: float = 0.9,
        axis: str = "",
    ):
        if not q > 0:
            raise ValueError(f"Kalman process noise q must be positive, got {q}.")
        if not r >= 0:
            raise ValueError(f"Kalman observation noise r must be non-negative, got {r}.")
        if not 0.0 <= alpha <= 1.0:
            raise ValueError(f"Kalman alpha must be between 0 and 1, got {alpha}.")
        self.axis = axis
        self.q = q  # 过程噪声（固定）
        self.alpha = alpha  # r 更新的平滑系数
        self._r0 = r
        self.x = 0.0
        self.p = 1.0
        self.r = r
        self.initialized = False

    @property
    def estimate(self) -> Optional[float]:
        return self.x if self.initialized else None

    def reset(self) -> None:
        self.x = 0.0
        self.p = 1.0
        self.r = self._r0
        self.initialized = False

    def update(self, measurement: float) -> float:
        # 首次观测直接作为状态
        if not self.initialized:
            self.x = measurement
            self.p = 1.0
            self.initialized = True
            return self.x

        # 预测：状态不变，仅协方差增加
        p_predict = self.p + self.q

        # 更新
        k = p_predict / (p_predict + self.r)
        innovation = measurement - self.x
        self.x = self.x + k * innovation
        self.p = (1 - k) * p_predict

        # 自适应观测噪声
        residual = innovation * innovation
        self.r = self.alpha * self.r + (1 - self.alpha) * residual

        return self.x

    def __repr__(self) -> str:
        return (
            f"AdaptiveKalman(axis={self.axis!r}, x={self.x:.4f}, p={self.p:.4f}, "
            f"r={self.r:.4f}, initialized={self.initialized})"
        )
