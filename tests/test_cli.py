import pytest

from ble_position_estimator.cli import main, replay_scan_log
from ble_position_estimator.config_manager import ConfigManager


def _write_config(tmp_path) -> ConfigManager:
    beacons = tmp_path / "beacons.csv"
    beacons.write_text(
        "name,x,y,tx_power,path_loss_exponent\n"
        "A,0,0,-59,2.0\n"
        "B,2,0,-59,2.0\n"
        "C,0,2,-59,2.0\n",
        encoding="utf-8",
    )
    config = ConfigManager(str(tmp_path / "config.yaml"))
    config.config["paths"]["beacon_db"] = str(beacons)
    config.save_config()
    return config


def _write_scan_log(tmp_path) -> str:
    path = tmp_path / "scans.csv"
    path.write_text(
        "id,device_id,name,rssi\n"
        "1,dev-1,A,-65\n"
        "1,dev-1,B,-65\n"
        "2,dev-1,C,-65\n"
        "3,dev-1,A,-40\n",
        encoding="utf-8",
    )
    return str(path)


def test_replay_feeds_cycles_in_order(tmp_path) -> None:
    config = _write_config(tmp_path)

    result = replay_scan_log(_write_scan_log(tmp_path), config)

    assert list(result["id"]) == [1, 2, 3]
    assert result.loc[0, "raw_x"] != result.loc[0, "raw_x"]  # NaN: only two beacons seen
    assert result.loc[1, "raw_x"] == pytest.approx(2 / 3)
    assert result.loc[1, "kf_y"] == pytest.approx(2 / 3)
    assert list(result["moving"]) == [False, False, True]
    assert list(result["beacon_count"]) == [2, 3, 3]


def test_replay_rejects_missing_columns(tmp_path) -> None:
    config = _write_config(tmp_path)
    path = tmp_path / "scans.csv"
    path.write_text("id,name\n1,A\n", encoding="utf-8")

    with pytest.raises(ValueError, match="rssi"):
        replay_scan_log(str(path), config)


def test_replay_command_writes_csv_to_stdout(tmp_path, capsys) -> None:
    _write_config(tmp_path)

    main(["--config", str(tmp_path / "config.yaml"), "replay", _write_scan_log(tmp_path)])

    out = capsys.readouterr().out.splitlines()
    assert out[0] == "id,device_id,cycle,beacon_count,raw_x,raw_y,ma_x,ma_y,kf_x,kf_y,moving"
    assert len(out) == 4
    assert out[2].startswith("2,dev-1,2,3,0.6667,0.6667")


def test_replay_keeps_devices_separate(tmp_path) -> None:
    config = _write_config(tmp_path)
    path = tmp_path / "scans.csv"
    path.write_text(
        "id,device_id,name,rssi\n"
        "1,dev-1,A,-65\n"
        "1,dev-1,B,-65\n"
        "2,dev-2,C,-65\n"
        "3,dev-1,C,-65\n",
        encoding="utf-8",
    )

    result = replay_scan_log(str(path), config)

    assert list(result["device_id"]) == ["dev-1", "dev-2", "dev-1"]
    assert list(result["beacon_count"]) == [2, 1, 3]
    assert result.loc[1, "raw_x"] != result.loc[1, "raw_x"]  # NaN: dev-2 only saw C
    assert list(result["cycle"]) == [1, 1, 2]
    assert result.loc[2, "raw_x"] == pytest.approx(2 / 3)
