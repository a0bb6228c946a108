from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

import paho.mqtt.client as mqtt
from paho.mqtt.client import MQTTMessage

from .config_manager import ConfigManager
from .beacon_store import BeaconStore
from .models import EstimateSnapshot, ScanRecord
from .pipeline import EstimationPipeline


logger = logging.getLogger(__name__)


class MQTTDataProcessor:
    def __init__(self, config_manager: ConfigManager, beacon_store: Optional[BeaconStore] = None):
        # 同一时刻只允许一个消息进入流水线
        self.lock = threading.Lock()
        self.config_manager = config_manager
        self.client: Optional[mqtt.Client] = None

        # 信标与流水线
        if beacon_store is None:
            beacon_store = BeaconStore(self.config_manager)
            beacon_store.load()
        self.beacon_store = beacon_store

        # 为每个设备创建独立的流水线
        self.pipelines: Dict[str, EstimationPipeline] = {}

    def pipeline_for(self, device_id: str) -> EstimationPipeline:
        if device_id not in self.pipelines:
            self.pipelines[device_id] = self.config_manager.build_pipeline(self.beacon_store.all())
        return self.pipelines[device_id]

    # ---------- Core processing ----------
    def process_record(self, record: ScanRecord) -> EstimateSnapshot:
        snapshot = self.pipeline_for(record.device_id).process(record)
        if snapshot.raw is None:
            logger.warning(
                "有效信标不足，无法定位: 设备 %s, 信标数 %s", record.device_id, snapshot.beacon_count
            )
        else:
            logger.info(
                "位置计算成功: 原始 (%.3f, %.3f), 卡尔曼 %s, 移动中: %s, 信标数: %s",
                snapshot.raw.x,
                snapshot.raw.y,
                snapshot.filtered,
                snapshot.is_moving,
                snapshot.beacon_count,
            )
        return snapshot

    def handle_payload(self, payload: str) -> Optional[EstimateSnapshot]:
        with self.lock:
            record = ScanRecord.parse(payload)
            if record is None or record.is_empty:
                logger.warning("消息解析无有效信标数据: %s", payload)
                return None
            snapshot = self.process_record(record)
            self.publish(record.device_id, snapshot)
            return snapshot

    def publish(self, device_id: str, snapshot: EstimateSnapshot) -> None:
        if self.client is None:
            return
        mqtt_config = self.config_manager.get_mqtt_config()
        topic = mqtt_config.get("uplink_topic", "/device/position/{deviceId}")
        self.client.publish(topic.format(deviceId=device_id), snapshot.to_protocol_string(device_id))

    # ---------- MQTT ----------
    def start_mqtt_client(self):
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        self.client.on_connect = self.on_connect
        self.client.on_message = self.on_message
        try:
            mqtt_config = self.config_manager.get_mqtt_config()
            self.client.connect(mqtt_config["ip"], int(mqtt_config["port"]), 60)
            logger.info("连接到MQTT服务器 %s:%s", mqtt_config["ip"], mqtt_config["port"])
            self.client.loop_forever()
        except OSError as e:
            logger.error("MQTT连接错误: %s", e)

    def stop_mqtt_client(self):
        if self.client is not None:
            self.client.disconnect()
            self.client.loop_stop()
            logger.info("MQTT连接已断开")

    # ---------- MQTT handlers ----------
    def on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error("连接失败，返回码: %s", reason_code)
            return
        logger.info("成功连接到MQTT服务器")
        mqtt_config = self.config_manager.get_mqtt_config()
        topic = mqtt_config.get("downlink_topic", "/device/blueTooth/scan/+")
        client.subscribe(topic)
        logger.info("已订阅主题: %s", topic)

    def on_message(self, client, userdata, msg: MQTTMessage):
        try:
            payload = msg.payload.decode("utf-8")
            self.handle_payload(payload)
        except Exception as e:
            # 单条消息出错不能中断 MQTT 循环
            logger.exception("处理消息时出错: %s", e)
