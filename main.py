"""
入口转发

包名: ble_position_estimator
CLI: ble-position-estimator

此文件仅用于兼容 `python main.py` 的运行方式，会转发到 `ble_position_estimator.cli:main`。
"""

from ble_position_estimator.cli import main as _cli_main


def main():
    _cli_main()


if __name__ == "__main__":  # pragma: no cover
    main()
