from __future__ import annotations

import copy
import logging
import os
import yaml

from typing import Callable, Any, Mapping

from .models import BeaconCalibration
from .pipeline import EstimationPipeline


logger = logging.getLogger(__name__)


def _env_or_default(env_key: str, default: Any, cast: Callable[[str], Any] = str) -> Any:
    v = os.environ.get(env_key)
    if v is not None:
        try:
            return cast(v)
        except ValueError:
            logger.warning("环境变量 %s=%r 无法解析，使用默认值 %r", env_key, v, default)
            return default
    return default


DEFAULT_CONFIG_PATH = _env_or_default(
    "BLE_ESTIMATOR_CONFIG",
    os.path.join(".", "config", "config.yaml"),
)


class ConfigManager:
    """配置管理类，负责读写YAML配置文件"""

    def __init__(self, config_file: str | None = None):
        self.config_file = config_file or DEFAULT_CONFIG_PATH
        self.default_config = {
            "mqtt": {
                "ip": _env_or_default("BLE_MQTT_IP", "localhost"),
                "port": _env_or_default("BLE_MQTT_PORT", 1883, int),
                "uplink_topic": _env_or_default("BLE_MQTT_UPLINK_TOPIC", "/device/position/{deviceId}"),
                "downlink_topic": _env_or_default("BLE_MQTT_DOWNLINK_TOPIC", "/device/blueTooth/scan/+"),
            },
            "pipeline": {
                "long_window": _env_or_default("BLE_PIPELINE_LONG_WINDOW", 60, int),
                "short_window": _env_or_default("BLE_PIPELINE_SHORT_WINDOW", 10, int),
                "movement_threshold": _env_or_default("BLE_PIPELINE_MOVEMENT_THRESHOLD", 0.2, float),
                "min_beacons": _env_or_default("BLE_PIPELINE_MIN_BEACONS", 3, int),
                "min_distance": _env_or_default("BLE_PIPELINE_MIN_DISTANCE", 0.1, float),
            },
            "kalman": {
                "q": _env_or_default("BLE_KALMAN_Q", 0.01, float),
                "r": _env_or_default("BLE_KALMAN_R", 0.5, float),
                "alpha": _env_or_default("BLE_KALMAN_ALPHA", 0.9, float),
            },
            "paths": {
                "beacon_db": _env_or_default(
                    "BLE_PATH_BEACON_DB", os.path.join(".", "beacon", "beacons.csv")
                ),
            },
        }
        self.load_config()

    def load_config(self) -> None:
        """加载配置文件，如果不存在则创建默认配置"""
        if not os.path.exists(self.config_file):
            self.config = copy.deepcopy(self.default_config)
            self.save_config()
            return
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise yaml.YAMLError(f"顶层应为映射，实际为 {type(loaded).__name__}")
            self.config = loaded
            self._merge_default_config()
        except (OSError, yaml.YAMLError) as e:
            # 发生异常时回退到默认配置
            logger.warning("加载配置文件 %s 失败，使用默认配置: %s", self.config_file, e)
            self.config = copy.deepcopy(self.default_config)

    def _merge_default_config(self) -> None:
        def merge_dict(default, current):
            for key, value in default.items():
                if key not in current:
                    current[key] = copy.deepcopy(value)
                elif isinstance(value, dict) and isinstance(current[key], dict):
                    merge_dict(value, current[key])

        merge_dict(self.default_config, self.config)

    def save_config(self) -> None:
        try:
            os.makedirs(os.path.dirname(self.config_file) or ".", exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                yaml.dump(
                    self.config,
                    f,
                    default_flow_style=False,
                    allow_unicode=True,
                    indent=2,
                )
        except OSError as e:
            logger.error("保存配置文件 %s 失败: %s", self.config_file, e)

    # ---------- Accessors ----------
    def get_mqtt_config(self):
        return self.config["mqtt"]

    def get_pipeline_config(self):
        return self.config["pipeline"]

    def get_kalman_config(self):
        return self.config["kalman"]

    def get_paths(self):
        return self.config.get("paths", {})

    def get_beacon_db_path(self):
        return self.get_paths()["beacon_db"]

    def build_pipeline(self, calibrations: Mapping[str, BeaconCalibration]) -> EstimationPipeline:
        """按 pipeline/kalman 配置构建处理流水线，非法参数抛出 ValueError"""
        p = self.get_pipeline_config()
        k = self.get_kalman_config()
        return EstimationPipeline(
            calibrations,
            long_window=int(p["long_window"]),
            short_window=int(p["short_window"]),
            movement_threshold=float(p["movement_threshold"]),
            min_beacons=int(p["min_beacons"]),
            min_distance=float(p["min_distance"]),
            kalman_q=float(k["q"]),
            kalman_r=float(k["r"]),
            kalman_alpha=float(k["alpha"]),
        )
