from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import Dict

import pandas as pd

from .config_manager import ConfigManager
from .beacon_store import BeaconStore
from .models import BeaconReading, EstimateSnapshot
from .mqtt_processor import MQTTDataProcessor
from .pipeline import EstimationPipeline


logger = logging.getLogger(__name__)

REPLAY_COLUMNS = ["id", "device_id", "name", "rssi"]


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def run_mqtt(args):
    config = ConfigManager(args.config)
    processor = MQTTDataProcessor(config)

    t = threading.Thread(target=processor.start_mqtt_client, daemon=True)
    t.start()

    # graceful shutdown
    def handle_sigint(sig, frame):
        processor.stop_mqtt_client()
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_sigint)
    signal.signal(signal.SIGTERM, handle_sigint)

    t.join()


def replay_scan_log(scan_csv: str, config: ConfigManager) -> pd.DataFrame:
    """
    离线回放扫描记录：
    CSV 每行一条信标读数（id 为扫描周期），按出现顺序逐周期送入该设备自己的流水线，
    返回每个周期的估计结果。
    """
    df = pd.read_csv(scan_csv, dtype={"name": str, "device_id": str})
    missing = [col for col in REPLAY_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"扫描记录缺少列: {', '.join(missing)}")

    store = BeaconStore(config)
    store.load()
    # 每个设备独立的流水线
    pipelines: Dict[str, EstimationPipeline] = {}

    rows = []
    for (scan_id, device_id), group in df.groupby(["id", "device_id"], sort=False):
        readings = [
            BeaconReading(name=str(row["name"]), rssi=int(row["rssi"]))
            for _, row in group.iterrows()
        ]
        if device_id not in pipelines:
            pipelines[device_id] = config.build_pipeline(store.all())
        snapshot = pipelines[device_id].process(readings)
        rows.append({"id": scan_id, "device_id": device_id, **snapshot.to_row()})

    logger.info("回放完成: %s 个扫描周期", len(rows))
    return pd.DataFrame(rows, columns=["id", "device_id", *EstimateSnapshot().to_row().keys()])


def run_replay(args):
    config = ConfigManager(args.config)
    result = replay_scan_log(args.scan_csv, config)
    result.to_csv(sys.stdout, index=False, float_format="%.4f")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="ble-position-estimator", description="BLE RSSI position estimator CLI"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="配置文件路径，默认读取 ./config/config.yaml 或环境变量 BLE_ESTIMATOR_CONFIG",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    sub = parser.add_subparsers(dest="cmd")

    p_run = sub.add_parser("run", help="运行 MQTT 监听并发布位置估计")
    p_run.set_defaults(func=run_mqtt)

    p_replay = sub.add_parser("replay", help="离线回放扫描记录CSV，结果输出到标准输出")
    p_replay.add_argument("scan_csv", help="扫描记录CSV，列: id,device_id,name,rssi")
    p_replay.set_defaults(func=run_replay)

    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    # 无子命令时默认启动服务器
    if not hasattr(args, "func"):
        return run_mqtt(args)
    return args.func(args)


if __name__ == "__main__":
    main()
