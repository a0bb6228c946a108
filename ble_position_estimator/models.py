from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional, Dict, Any, List, Iterator


@dataclass(frozen=True)
class Position:
    x: float
    y: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)

    def distance_to(self, other: "Position") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


@dataclass(frozen=True)
class BeaconCalibration:
    """信标标定信息（启动时配置，运行期间只读）"""

    name: str
    x: float
    y: float
    tx_power: int  # 1米处的RSSI值 (dBm)
    path_loss_exponent: float  # 路径损耗指数

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Beacon name must be set.")
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise ValueError(f"Beacon {self.name!r} coordinates must be finite numbers.")
        if not math.isfinite(self.path_loss_exponent) or self.path_loss_exponent <= 0:
            raise ValueError(
                f"Beacon {self.name!r} path_loss_exponent must be positive, "
                f"got {self.path_loss_exponent}."
            )

    @property
    def position(self) -> Position:
        return Position(x=self.x, y=self.y)


@dataclass(frozen=True)
class BeaconReading:
    name: str
    rssi: int


@dataclass(frozen=True)
class BeaconDistanceSample:
    x: float
    y: float
    distance: float


@dataclass(frozen=True)
class ScanRecord:
    """
    一次扫描周期上报的蓝牙读数
    格式：name,rssi;name,rssi;...;device_id
    """

    device_id: str
    names: List[str]
    rssis: List[int]
    timestamp: str

    def __len__(self) -> int:
        return len(self.names)

    def __getitem__(self, index: int) -> BeaconReading:
        return BeaconReading(name=self.names[index], rssi=self.rssis[index])

    def __iter__(self) -> Iterator[BeaconReading]:
        for name, rssi in zip(self.names, self.rssis):
            yield BeaconReading(name=name, rssi=rssi)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    @classmethod
    def parse(cls, data_str: str) -> Optional["ScanRecord"]:
        parts = data_str.strip().split(";")
        if len(parts) < 2:
            return None
        device_id = parts[-1].strip()
        if not device_id:
            return None
        now_str = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        names: List[str] = []
        rssis: List[int] = []
        for item in parts[:-1]:
            fields = item.split(",")
            if len(fields) != 2:
                continue
            name, rssi_str = fields[0].strip(), fields[1].strip()
            if not name:
                continue
            try:
                rssi = int(rssi_str)
            except ValueError:
                continue
            names.append(name)
            rssis.append(rssi)
        return cls(device_id=device_id, names=names, rssis=rssis, timestamp=now_str)


def _fmt(value: Optional[float]) -> str:
    return "" if value is None else f"{value:.4f}"


@dataclass(frozen=True)
class EstimateSnapshot:
    """
    一次处理周期后对外发布的估计结果。
    整个快照一次性替换，读取方不会看到更新到一半的坐标。
    """

    raw: Optional[Position] = None
    smoothed: Optional[Position] = None  # 长窗口移动平均
    filtered: Optional[Position] = None  # 短窗口移动平均 -> 自适应卡尔曼
    is_moving: Optional[bool] = None
    beacon_count: int = 0
    cycle: int = 0

    def to_dict(self) -> Dict[str, Any]:
        # 过滤掉值为None的键
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None}

    def to_row(self) -> Dict[str, Any]:
        """扁平化为一行表格数据，缺失值为 None"""
        return {
            "cycle": self.cycle,
            "beacon_count": self.beacon_count,
            "raw_x": self.raw.x if self.raw else None,
            "raw_y": self.raw.y if self.raw else None,
            "ma_x": self.smoothed.x if self.smoothed else None,
            "ma_y": self.smoothed.y if self.smoothed else None,
            "kf_x": self.filtered.x if self.filtered else None,
            "kf_y": self.filtered.y if self.filtered else None,
            "moving": self.is_moving,
        }

    def to_protocol_string(self, device_id: str) -> str:
        """转换为上行协议字符串，缺失字段留空"""
        row = self.to_row()
        moving = "" if self.is_moving is None else str(int(self.is_moving))
        return (
            f"{device_id},"
            f"{_fmt(row['raw_x'])},"
            f"{_fmt(row['raw_y'])},"
            f"{_fmt(row['ma_x'])},"
            f"{_fmt(row['ma_y'])},"
            f"{_fmt(row['kf_x'])},"
            f"{_fmt(row['kf_y'])},"
            f"{moving}"
        )
