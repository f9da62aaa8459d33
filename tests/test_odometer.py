from __future__ import annotations

import logging
import random
from datetime import date, datetime, timedelta, timezone

import pytest

from backend.fleet.models import DepotSummary, OdometerReading, Vehicle, VehicleReading
from backend.fleet.odometer import (
    UNKNOWN_DEPOT,
    UNKNOWN_REG,
    filter_by_period,
    fleet_totals,
    reading_rank,
    summarize,
)


def _vehicle(vehicle_id: int, reg: str | None, depot: str | None) -> Vehicle:
    return Vehicle(id=vehicle_id, chassis=f"CH{vehicle_id:04d}", reg=reg, depot=depot)


def _reading(reading_id: int, vehicle_id: int, value, reading_date) -> OdometerReading:
    return OdometerReading(id=reading_id, vehicle_id=vehicle_id, value=value, date=reading_date)


def _by_depot(summaries: list[DepotSummary]) -> dict[str, DepotSummary]:
    return {summary.depot: summary for summary in summaries}


def test_latest_reading_wins() -> None:
    vehicles = [_vehicle(1, "V1", "Depot A")]
    readings = [
        _reading(1, 1, 100, date(2024, 1, 1)),
        _reading(2, 1, 150, date(2024, 1, 15)),
    ]

    summaries = summarize(vehicles, readings)

    assert len(summaries) == 1
    depot = summaries[0]
    assert depot.depot == "Depot A"
    assert depot.total_odometer == 150
    assert depot.vehicle_count == 1
    assert depot.vehicles == [VehicleReading(chassis="CH0001", reg="V1", last_reading=150, date=date(2024, 1, 15))]


def test_vehicle_without_readings_is_omitted() -> None:
    vehicles = [_vehicle(1, "V1", "Depot A"), _vehicle(2, "V2", "Depot A")]
    readings = [_reading(1, 1, 500, date(2024, 1, 1))]

    summaries = summarize(vehicles, readings)

    assert summaries[0].vehicle_count == 1
    assert [record.reg for record in summaries[0].vehicles] == ["V1"]


def test_depot_without_any_readings_is_absent() -> None:
    vehicles = [_vehicle(1, "V1", "Depot A"), _vehicle(2, "V2", "Depot B")]
    readings = [_reading(1, 1, 500, date(2024, 1, 1))]

    assert [summary.depot for summary in summarize(vehicles, readings)] == ["Depot A"]


@pytest.mark.parametrize("order", ["newer_first", "older_first"])
def test_older_reading_never_replaces_newer(order: str) -> None:
    vehicles = [_vehicle(1, "V1", "Depot A")]
    readings = [
        _reading(1, 1, 500, date(2024, 2, 1)),
        _reading(2, 1, 300, date(2024, 1, 1)),
    ]
    if order == "older_first":
        readings.reverse()

    depot = summarize(vehicles, readings)[0]

    assert depot.vehicles[0].last_reading == 500
    assert depot.vehicles[0].date == date(2024, 2, 1)
    assert depot.total_odometer == 500


def test_day_filter_drops_stale_vehicle_and_empty_depot() -> None:
    now = datetime(2024, 6, 1, 12, 0)
    vehicles = [_vehicle(1, "V1", "Depot A"), _vehicle(2, "V2", "Depot B")]
    readings = [
        _reading(1, 1, 1200, (now - timedelta(days=40)).date()),
        _reading(2, 2, 800, now.date()),
    ]
    summaries = summarize(vehicles, readings)

    filtered = filter_by_period(summaries, "day", now=now)

    assert [summary.depot for summary in filtered] == ["Depot B"]
    assert filtered[0].total_odometer == 800
    assert filtered[0].vehicle_count == 1


def test_filter_recomputes_depot_totals() -> None:
    now = datetime(2024, 6, 30, 9, 0)
    vehicles = [_vehicle(1, "V1", "Depot A"), _vehicle(2, "V2", "Depot A"), _vehicle(3, "V3", "Depot A")]
    readings = [
        _reading(1, 1, 1000, date(2024, 6, 29)),
        _reading(2, 2, 2000, date(2024, 6, 20)),
        _reading(3, 3, 4000, date(2024, 3, 1)),
    ]
    summaries = summarize(vehicles, readings)

    week = _by_depot(filter_by_period(summaries, "week", now=now))["Depot A"]
    month = _by_depot(filter_by_period(summaries, "month", now=now))["Depot A"]

    assert (week.total_odometer, week.vehicle_count) == (1000, 1)
    assert (month.total_odometer, month.vehicle_count) == (3000, 2)


def test_filter_all_returns_equal_copy() -> None:
    vehicles = [_vehicle(1, "V1", "Depot A")]
    summaries = summarize(vehicles, [_reading(1, 1, 10, date(2020, 1, 1))])

    filtered = filter_by_period(summaries, "all", now=datetime(2024, 1, 1))

    assert filtered == summaries
    filtered[0].vehicles[0].last_reading = 99
    assert summaries[0].vehicles[0].last_reading == 10


def test_filter_does_not_mutate_input() -> None:
    now = datetime(2024, 6, 1)
    vehicles = [_vehicle(1, "V1", "Depot A"), _vehicle(2, "V2", "Depot A")]
    readings = [_reading(1, 1, 100, date(2024, 1, 1)), _reading(2, 2, 200, date(2024, 5, 31))]
    summaries = summarize(vehicles, readings)

    filter_by_period(summaries, "day", now=now)

    assert summaries[0].vehicle_count == 2
    assert summaries[0].total_odometer == 300


def test_window_boundary_is_inclusive() -> None:
    now = datetime(2024, 6, 8, 0, 0)
    summaries = summarize([_vehicle(1, "V1", "Depot A")], [_reading(1, 1, 70, date(2024, 6, 1))])

    assert filter_by_period(summaries, "week", now=now)
    assert not filter_by_period(summaries, "week", now=now + timedelta(seconds=1))


def test_future_dated_reading_passes_window() -> None:
    now = datetime(2024, 6, 1)
    summaries = summarize([_vehicle(1, "V1", "Depot A")], [_reading(1, 1, 70, date(2024, 6, 10))])

    assert filter_by_period(summaries, "day", now=now)


def test_unknown_period_is_rejected() -> None:
    with pytest.raises(ValueError):
        filter_by_period([], "year")


def test_same_date_tie_prefers_higher_value_then_id() -> None:
    vehicles = [_vehicle(1, "V1", "Depot A")]
    same_day = date(2024, 3, 3)
    readings = [
        _reading(5, 1, 900, same_day),
        _reading(2, 1, 950, same_day),
        _reading(9, 1, 950, same_day),
    ]

    record = summarize(vehicles, readings)[0].vehicles[0]

    assert record.last_reading == 950
    assert reading_rank(same_day, 950, 9) > reading_rank(same_day, 950, 2)
    assert reading_rank(same_day, 950, 2) > reading_rank(same_day, 900, 5)
    assert reading_rank(date(2024, 3, 4), 1, 1) > reading_rank(same_day, 950, 9)


def test_missing_depot_and_reg_are_substituted() -> None:
    vehicles = [_vehicle(1, None, None), _vehicle(2, "V2", "   ")]
    readings = [_reading(1, 1, 10, date(2024, 1, 1)), _reading(2, 2, 20, date(2024, 1, 1))]

    depot = _by_depot(summarize(vehicles, readings))[UNKNOWN_DEPOT]

    assert depot.vehicle_count == 2
    assert sorted(record.reg for record in depot.vehicles) == sorted([UNKNOWN_REG, "V2"])


def test_pending_plates_in_one_depot_stay_separate() -> None:
    vehicles = [_vehicle(1, "Pending", "Depot A"), _vehicle(2, "Pending", "Depot A")]
    readings = [_reading(1, 1, 10, date(2024, 1, 1)), _reading(2, 2, 20, date(2024, 1, 2))]

    depot = summarize(vehicles, readings)[0]

    assert depot.vehicle_count == 2
    assert depot.total_odometer == 30


def test_invalid_readings_are_skipped(caplog: pytest.LogCaptureFixture) -> None:
    vehicles = [_vehicle(1, "V1", "Depot A")]
    readings = [
        _reading(1, 1, 100, date(2024, 1, 1)),
        _reading(2, 1, 999, "not-a-date"),
        _reading(3, 1, -5, date(2024, 2, 1)),
        _reading(4, 1, float("nan"), date(2024, 2, 2)),
        _reading(5, 1, True, date(2024, 2, 3)),
        _reading(6, 42, 5000, date(2024, 2, 4)),
    ]

    with caplog.at_level(logging.WARNING, logger="backend.fleet.odometer"):
        summaries = summarize(vehicles, readings)

    assert summaries[0].vehicles[0].last_reading == 100
    assert summaries[0].total_odometer == 100
    assert len(caplog.records) == 5


def test_string_dates_are_accepted() -> None:
    vehicles = [_vehicle(1, "V1", "Depot A")]
    readings = [
        _reading(1, 1, 100, "2024-01-01"),
        _reading(2, 1, 200, "2024-01-20T08:30:00"),
    ]

    record = summarize(vehicles, readings)[0].vehicles[0]

    assert record.date == date(2024, 1, 20)
    assert record.last_reading == 200


def test_empty_inputs_give_empty_summary() -> None:
    assert summarize([], []) == []
    assert summarize([_vehicle(1, "V1", "Depot A")], []) == []
    assert filter_by_period([], "month") == []


def test_summary_invariants_hold_for_shuffled_readings() -> None:
    rng = random.Random(7)
    depots = ["Depot A", "Depot B", "Depot C"]
    vehicles = [_vehicle(index, f"KA51AL{index:04d}", depots[index % 3]) for index in range(1, 13)]
    readings = []
    for reading_id in range(1, 121):
        vehicle = rng.choice(vehicles)
        reading_date = date(2024, 1, 1) + timedelta(days=rng.randint(0, 60))
        readings.append(_reading(reading_id, vehicle.id, rng.randint(0, 50000), reading_date))

    expected: dict[str, tuple] = {}
    for reading in readings:
        rank = reading_rank(reading.date, reading.value, reading.id)
        current = expected.get(reading.vehicle_id)
        if current is None or rank > current:
            expected[reading.vehicle_id] = rank

    first = summarize(vehicles, readings)
    shuffled = list(readings)
    rng.shuffle(shuffled)
    second = summarize(vehicles, shuffled)

    def _normalized(summaries: list[DepotSummary]) -> dict[str, tuple]:
        return {
            summary.depot: (
                summary.total_odometer,
                summary.vehicle_count,
                sorted((record.chassis, record.last_reading, record.date) for record in summary.vehicles),
            )
            for summary in summaries
        }

    assert _normalized(first) == _normalized(second)
    for summary in first:
        assert summary.total_odometer == sum(record.last_reading for record in summary.vehicles)
        assert summary.vehicle_count == len(summary.vehicles)
        for record in summary.vehicles:
            vehicle_id = int(record.chassis[2:])
            assert (record.date, record.last_reading) == expected[vehicle_id][:2]
    assert fleet_totals(first)["vehicle_count"] == len(expected)


def test_filter_accepts_timezone_aware_now() -> None:
    vehicles = [_vehicle(1, "V1", "Depot A"), _vehicle(2, "V2", "Depot B")]
    readings = [_reading(1, 1, 5, date(2024, 6, 1)), _reading(2, 2, 9, date(2024, 5, 20))]
    summaries = summarize(vehicles, readings)
    local_now = datetime(2024, 6, 1, 12, 0)

    filtered = filter_by_period(summaries, "day", now=local_now.astimezone())

    assert [summary.depot for summary in filtered] == ["Depot A"]
    assert filter_by_period(summaries, "day", now=local_now.astimezone()) == filter_by_period(
        summaries, "day", now=local_now
    )
    utc_result = filter_by_period(summaries, "all", now=datetime(2024, 6, 1, 12, tzinfo=timezone.utc))
    assert len(utc_result) == 2
