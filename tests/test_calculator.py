import pytest

from ble_position_estimator.calculator import BeaconLocationCalculator, estimate_distance
from ble_position_estimator.models import BeaconCalibration, BeaconReading


def _make_calibrations() -> dict[str, BeaconCalibration]:
    return {
        "A": BeaconCalibration(name="A", x=0.0, y=0.0, tx_power=-59, path_loss_exponent=2.0),
        "B": BeaconCalibration(name="B", x=2.0, y=0.0, tx_power=-59, path_loss_exponent=2.0),
        "C": BeaconCalibration(name="C", x=0.0, y=2.0, tx_power=-59, path_loss_exponent=2.0),
    }


def test_distance_at_reference_power_is_one_meter() -> None:
    assert estimate_distance(-59, -59, 2.0) == pytest.approx(1.0)
    assert estimate_distance(-79, -59, 2.0) == pytest.approx(10.0)
    assert estimate_distance(-65, -59, 3.0) == pytest.approx(10 ** (6 / 30))


def test_distance_is_positive_and_strictly_decreasing_in_rssi() -> None:
    for exponent in (1.5, 2.0, 3.5):
        distances = [estimate_distance(rssi, -59, exponent) for rssi in range(-110, -20)]
        assert all(d > 0 for d in distances)
        assert all(a > b for a, b in zip(distances, distances[1:]))


def test_equal_distances_reduce_to_unweighted_centroid() -> None:
    calculator = BeaconLocationCalculator(_make_calibrations())

    position = calculator.estimate_position(
        [BeaconReading("A", -65), BeaconReading("B", -65), BeaconReading("C", -65)]
    )

    assert position is not None
    assert position.x == pytest.approx(2 / 3)
    assert position.y == pytest.approx(2 / 3)


def test_fewer_than_three_known_beacons_returns_none() -> None:
    calculator = BeaconLocationCalculator(_make_calibrations())

    assert calculator.estimate_position([]) is None
    assert calculator.estimate_position([BeaconReading("A", -65), BeaconReading("B", -60)]) is None
    assert (
        calculator.estimate_position(
            [BeaconReading("A", -65), BeaconReading("B", -60), BeaconReading("unknown", -40)]
        )
        is None
    )


def test_duplicate_readings_count_once_and_last_wins() -> None:
    calculator = BeaconLocationCalculator(_make_calibrations())
    readings = [
        BeaconReading("A", -65),
        BeaconReading("A", -65),
        BeaconReading("B", -65),
    ]

    assert calculator.estimate_position(readings) is None

    matched = calculator.match(
        [BeaconReading("A", -90), BeaconReading("B", -65), BeaconReading("A", -61)]
    )
    assert matched["A"].rssi == -61
    assert set(matched) == {"A", "B"}


def test_near_field_distances_are_clamped_before_weighting() -> None:
    calculator = BeaconLocationCalculator(_make_calibrations())

    # A and B are both closer than 0.1 m and get the same clamped weight (100)
    position = calculator.estimate_position(
        [BeaconReading("A", -10), BeaconReading("B", -30), BeaconReading("C", -79)]
    )

    assert position is not None
    assert position.x == pytest.approx(200 / 200.01)
    assert position.y == pytest.approx(0.02 / 200.01)


def test_inverse_square_weighting_pulls_toward_closer_beacon() -> None:
    calculator = BeaconLocationCalculator(_make_calibrations())

    samples = calculator.distances(
        [BeaconReading("A", -59), BeaconReading("B", -65), BeaconReading("C", -65)]
    )
    position = calculator.weighted_centroid(samples)

    assert len(samples) == 3
    assert position is not None
    assert position.x < 2 / 3
    assert position.y < 2 / 3
    assert position.x == pytest.approx(position.y)


def test_invalid_construction_is_rejected() -> None:
    with pytest.raises(ValueError):
        BeaconLocationCalculator(_make_calibrations(), min_beacons=0)
    with pytest.raises(ValueError):
        BeaconLocationCalculator(_make_calibrations(), min_distance=0.0)
    with pytest.raises(ValueError, match="path_loss_exponent"):
        BeaconCalibration(name="bad", x=0.0, y=0.0, tx_power=-59, path_loss_exponent=0.0)
    with pytest.raises(ValueError):
        BeaconCalibration(name="", x=0.0, y=0.0, tx_power=-59, path_loss_exponent=2.0)
