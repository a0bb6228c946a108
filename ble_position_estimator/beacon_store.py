from __future__ import annotations

import logging
import os
from types import MappingProxyType
from typing import Dict, Mapping, Optional, cast

import pandas as pd

from .models import BeaconCalibration
from .config_manager import ConfigManager


logger = logging.getLogger(__name__)

COLUMNS = ["x", "y", "tx_power", "path_loss_exponent"]

SAMPLE_BEACONS = [
    {"name": "MyCustomBeacon1", "x": 2.0, "y": 13.5, "tx_power": -59, "path_loss_exponent": 2.0},
    {"name": "MyCustomBeacon2", "x": 0.0, "y": 10.0, "tx_power": -59, "path_loss_exponent": 2.0},
    {"name": "MyCustomBeacon3", "x": 2.0, "y": 11.5, "tx_power": -59, "path_loss_exponent": 2.0},
    {"name": "MyCustomBeacon4", "x": 0.0, "y": 13.5, "tx_power": -59, "path_loss_exponent": 2.0},
]


class BeaconStore:
    """信标标定数据（pandas + CSV），加载后只读"""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        # 使用 DataFrame 管理，索引为 name
        self._df = pd.DataFrame(columns=COLUMNS)
        self._df.index.name = "name"
        self._config = config_manager or ConfigManager()
        self._beacons: Dict[str, BeaconCalibration] = {}

    # ---- Utils ----
    def _normalize_df(self, df: pd.DataFrame) -> pd.DataFrame:
        missing = [col for col in ["name", *COLUMNS] if col not in df.columns]
        if missing:
            raise ValueError(f"信标文件缺少列: {', '.join(missing)}")
        df = df[["name", *COLUMNS]].copy()
        for col in COLUMNS:
            numeric = pd.to_numeric(df[col], errors="coerce")
            bad = df.loc[numeric.isna(), "name"].tolist()
            if bad:
                raise ValueError(f"信标 {bad} 的 {col} 不是有效数值")
            df[col] = numeric
        # 去重、设索引与类型
        df["name"] = df["name"].astype(str).str.strip()
        df = df.drop_duplicates(subset=["name"], keep="last").set_index("name")
        df = df.astype({"x": "float64", "y": "float64", "tx_power": "int64", "path_loss_exponent": "float64"})
        return df.sort_index()

    def _build(self, df: pd.DataFrame) -> Dict[str, BeaconCalibration]:
        result: Dict[str, BeaconCalibration] = {}
        for name_key, row in df.iterrows():
            row_s = cast(pd.Series, row)
            name = str(name_key)
            result[name] = BeaconCalibration(
                name=name,
                x=float(row_s.at["x"]),
                y=float(row_s.at["y"]),
                tx_power=int(row_s.at["tx_power"]),
                path_loss_exponent=float(row_s.at["path_loss_exponent"]),
            )
        return result

    # ---- Load ----
    def load(self, beacon_file_path: Optional[str] = None) -> None:
        """读取信标CSV；文件不存在时生成示例文件。格式错误抛出 ValueError"""
        csv_path = beacon_file_path or self._config.get_beacon_db_path()
        if not os.path.exists(csv_path):
            logger.warning("信标文件 %s 不存在，已生成示例信标", csv_path)
            self._create_sample(csv_path)
            return
        df = pd.read_csv(csv_path, dtype={"name": str})
        df = self._normalize_df(df)
        self._beacons = self._build(df)
        self._df = df
        logger.info("已加载 %s 个信标: %s", len(self._beacons), csv_path)

    def _create_sample(self, csv_path: str) -> None:
        os.makedirs(os.path.dirname(csv_path) or ".", exist_ok=True)
        df = self._normalize_df(pd.DataFrame(SAMPLE_BEACONS))
        self._beacons = self._build(df)
        self._df = df
        # 保存为 CSV（将索引写为列 name）
        self._df.to_csv(csv_path, index=True, index_label="name", encoding="utf-8")

    # ---- Accessors ----
    def __len__(self) -> int:
        return len(self._beacons)

    def has(self, name: str) -> bool:
        return name in self._beacons

    def get(self, name: str) -> Optional[BeaconCalibration]:
        return self._beacons.get(name)

    def all(self) -> Mapping[str, BeaconCalibration]:
        return MappingProxyType(self._beacons)

    @property
    def frame(self) -> pd.DataFrame:
        return self._df.copy()
