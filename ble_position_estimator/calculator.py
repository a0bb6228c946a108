from __future__ import annotations

import math
from typing import Dict, Iterable, Mapping, Optional

import numpy as np

from .models import BeaconCalibration, BeaconDistanceSample, BeaconReading, Position


def estimate_distance(rssi: int, tx_power: int, path_loss_exponent: float) -> float:
    """
    对数距离路径损耗模型 (单位: 米)
    distance = 10 ^ ((tx_power - rssi) / (10 * n))
    """
    exponent = (tx_power - rssi) / (10.0 * path_loss_exponent)
    return math.pow(10, exponent)


class BeaconLocationCalculator:
    """基于RSSI的加权质心定位（权重为距离平方的倒数）"""

    def __init__(
        self,
        calibrations: Mapping[str, BeaconCalibration],
        min_beacons: int = 3,
        min_distance: float = 0.1,
    ):
        if min_beacons < 1:
            raise ValueError(f"min_beacons must be at least 1, got {min_beacons}.")
        if not min_distance > 0:
            raise ValueError(f"min_distance must be positive, got {min_distance}.")
        self.calibrations = calibrations
        # 参与计算的最少信标数（策略阈值）
        self.min_beacons = min_beacons
        # 距离下限，防止近场信标权重过大
        self.min_distance = min_distance

    def match(self, readings: Iterable[BeaconReading]) -> Dict[str, BeaconReading]:
        """只保留已标定的信标，同名读数后者覆盖前者"""
        matched: Dict[str, BeaconReading] = {}
        for reading in readings:
            if reading.name in self.calibrations:
                matched[reading.name] = reading
        return matched

    def distances(self, readings: Iterable[BeaconReading]) -> list[BeaconDistanceSample]:
        samples: list[BeaconDistanceSample] = []
        for name, reading in self.match(readings).items():
            beacon = self.calibrations[name]
            d = estimate_distance(reading.rssi, beacon.tx_power, beacon.path_loss_exponent)
            samples.append(BeaconDistanceSample(x=beacon.x, y=beacon.y, distance=d))
        return samples

    def weighted_centroid(self, samples: list[BeaconDistanceSample]) -> Optional[Position]:
        if not samples:
            return None
        coords = np.array([(s.x, s.y) for s in samples], dtype=float)
        dists = np.maximum(np.array([s.distance for s in samples], dtype=float), self.min_distance)
        weights = 1.0 / (dists * dists)

        total_weight = float(weights.sum())
        if total_weight == 0.0:
            return None
        x, y = (weights @ coords) / total_weight
        return Position(x=float(x), y=float(y))

    def estimate_position(self, readings: Iterable[BeaconReading]) -> Optional[Position]:
        """
        根据信标读数估计位置：
        - 已标定信标少于 min_beacons 个：返回 None
        - 否则：距离下限截断后按 1/d^2 加权求质心
        """
        samples = self.distances(readings)
        if len(samples) < self.min_beacons:
            return None
        return self.weighted_centroid(samples)
