"""BLE Position Estimator package.

This package provides:
- estimate_distance / BeaconLocationCalculator: RSSI path-loss distance and weighted-centroid position
- MovingAverage / AdaptiveKalman: sliding-window and per-axis adaptive Kalman smoothing
- MovementDetector: displacement-threshold motion classification
- EstimationPipeline: per-scan-cycle orchestration publishing EstimateSnapshot
- ConfigManager / BeaconStore: YAML configuration and CSV beacon calibrations
- MQTTDataProcessor: MQTT scan ingestion and estimate publishing
"""

from .models import (
    BeaconCalibration,
    BeaconDistanceSample,
    BeaconReading,
    EstimateSnapshot,
    Position,
    ScanRecord,
)
from .calculator import BeaconLocationCalculator, estimate_distance
from .filters import AdaptiveKalman, MovingAverage
from .movement import MovementDetector
from .pipeline import EstimationPipeline
from .config_manager import ConfigManager
from .beacon_store import BeaconStore
from .mqtt_processor import MQTTDataProcessor

__all__ = [
    "BeaconCalibration",
    "BeaconDistanceSample",
    "BeaconReading",
    "EstimateSnapshot",
    "Position",
    "ScanRecord",
    "BeaconLocationCalculator",
    "estimate_distance",
    "AdaptiveKalman",
    "MovingAverage",
    "MovementDetector",
    "EstimationPipeline",
    "ConfigManager",
    "BeaconStore",
    "MQTTDataProcessor",
]
