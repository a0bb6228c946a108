from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from .calculator import BeaconLocationCalculator
from .filters import AdaptiveKalman, MovingAverage
from .models import BeaconCalibration, BeaconReading, EstimateSnapshot, Position
from .movement import MovementDetector


logger = logging.getLogger(__name__)


class EstimationPipeline:
    """
    单个跟踪目标的处理流水线，每个扫描周期调用一次 process()：
    读数合并 -> 加权质心 -> {长窗口均值, 短窗口均值 -> 卡尔曼} -> 移动判定

    非线程安全：调用方需保证同一时刻只有一个 process() 在执行。
    """

    def __init__(
        self,
        calibrations: Mapping[str, BeaconCalibration],
        long_window: int = 60,
        short_window: int = 10,
        movement_threshold: float = 0.2,
        min_beacons: int = 3,
        min_distance: float = 0.1,
        kalman_q: float = 0.01,
        kalman_r: float = 0.5,
        kalman_alpha: float = 0.9,
    ):
        self.calculator = BeaconLocationCalculator(
            MappingProxyType(dict(calibrations)),
            min_beacons=min_beacons,
            min_distance=min_distance,
        )
        self.long_ma = MovingAverage(long_window)
        self.short_ma = MovingAverage(short_window)
        self.kalman_x = AdaptiveKalman(q=kalman_q, r=kalman_r, alpha=kalman_alpha, axis="x")
        self.kalman_y = AdaptiveKalman(q=kalman_q, r=kalman_r, alpha=kalman_alpha, axis="y")
        self.movement_detector = MovementDetector(movement_threshold)

        # 每个信标最近一次读数（后者覆盖前者）
        self._readings: Dict[str, BeaconReading] = {}
        self._last_position: Optional[Position] = None
        self._snapshot = EstimateSnapshot()

    # ---------- Accessors ----------
    @property
    def snapshot(self) -> EstimateSnapshot:
        return self._snapshot

    @property
    def smoothed_position(self) -> Optional[Position]:
        return self._snapshot.smoothed

    @property
    def filtered_position(self) -> Optional[Position]:
        return self._snapshot.filtered

    @property
    def is_moving(self) -> Optional[bool]:
        return self._snapshot.is_moving

    @property
    def readings(self) -> Mapping[str, BeaconReading]:
        return MappingProxyType(dict(self._readings))

    # ---------- Core processing ----------
    def process(self, observations: Iterable[BeaconReading]) -> EstimateSnapshot:
        for reading in observations:
            self._readings[reading.name] = reading

        readings = list(self._readings.values())
        beacon_count = len(self.calculator.match(readings))

        # 1. 原始加权质心
        raw = self.calculator.estimate_position(readings)

        # 2. 长窗口移动平均
        smoothed = self.long_ma.add_and_get_average(raw) if raw is not None else None

        # 3. 短窗口移动平均 -> 自适应卡尔曼
        filtered = self._snapshot.filtered
        short = self.short_ma.add_and_get_average(raw) if raw is not None else None
        if short is not None:
            filtered = Position(
                x=self.kalman_x.update(short.x),
                y=self.kalman_y.update(short.y),
            )

        # 4. 移动判定，前次位置即使为 None 也照常更新
        moving = self.movement_detector.is_moving(raw, self._last_position)
        self._last_position = raw

        self._snapshot = EstimateSnapshot(
            raw=raw,
            smoothed=smoothed,
            filtered=filtered,
            is_moving=moving,
            beacon_count=beacon_count,
            cycle=self._snapshot.cycle + 1,
        )
        logger.debug(
            "cycle=%s beacons=%s raw=%s smoothed=%s filtered=%s moving=%s",
            self._snapshot.cycle,
            beacon_count,
            raw,
            smoothed,
            filtered,
            moving,
        )
        return self._snapshot

    def reset(self) -> None:
        self._readings.clear()
        self.long_ma.clear()
        self.short_ma.clear()
        self.kalman_x.reset()
        self.kalman_y.reset()
        self._last_position = None
        self._snapshot = EstimateSnapshot()
