"""Odometer readings and the per-depot mileage summary.

``summarize`` folds a list of readings into one :class:`DepotSummary` per
depot, keeping only the latest reading of each vehicle. It makes a single
pass over the readings, so they may arrive in any order. Vehicles with no
usable reading are left out of the summary, and so are depots where no
vehicle has one.

``filter_by_period`` narrows an already computed summary to readings taken
within the last day, week or month without going back to the database.
"""

from __future__ import annotations

import dataclasses
import io
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from .auth import require_editor
from .database import Database
from .models import DepotSummary, OdometerReading, User, Vehicle, VehicleReading

UNKNOWN_DEPOT = "Unknown"
UNKNOWN_REG = "Unknown"

PERIOD_WINDOWS: dict[str, Optional[timedelta]] = {
    "all": None,
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}

PERIOD_LABELS: dict[str, str] = {
    "all": "All time",
    "day": "Last 24 hours",
    "week": "Last week",
    "month": "Last month",
}

_logger = logging.getLogger(__name__)

ReadingRank = Tuple[date, float, int]


def reading_rank(reading_date: date, value: float, reading_id: int) -> ReadingRank:
    """Ordering key for picking a vehicle's latest reading.

    The later date wins. On the same date the higher value wins, and after
    that the higher reading id.
    """
    return (reading_date, value, reading_id)


def depot_name(vehicle: Vehicle) -> str:
    depot = (vehicle.depot or "").strip()
    return depot or UNKNOWN_DEPOT


def parse_reading_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip().split("T", 1)[0]
        try:
            return datetime.strptime(text, "%Y-%m-%d").date()
        except ValueError:
            return None
    return None


def _reading_value(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return value


def summarize(vehicles: Iterable[Vehicle], readings: Iterable[OdometerReading]) -> List[DepotSummary]:
    vehicles_by_id = {vehicle.id: vehicle for vehicle in vehicles}
    depots: Dict[str, DepotSummary] = {}
    latest: Dict[int, Tuple[DepotSummary, VehicleReading, ReadingRank]] = {}

    for reading in readings:
        vehicle = vehicles_by_id.get(reading.vehicle_id)
        if vehicle is None:
            _logger.warning("Skipping reading %s: unknown vehicle %s", reading.id, reading.vehicle_id)
            continue
        reading_date = parse_reading_date(reading.date)
        if reading_date is None:
            _logger.warning("Skipping reading %s for %s: unparsable date %r", reading.id, vehicle.chassis, reading.date)
            continue
        value = _reading_value(reading.value)
        if value is None:
            _logger.warning("Skipping reading %s for %s: invalid value %r", reading.id, vehicle.chassis, reading.value)
            continue

        rank = reading_rank(reading_date, value, reading.id)
        current = latest.get(vehicle.id)
        if current is None:
            name = depot_name(vehicle)
            summary = depots.get(name)
            if summary is None:
                summary = depots[name] = DepotSummary(depot=name)
            record = VehicleReading(
                chassis=vehicle.chassis,
                reg=vehicle.reg or UNKNOWN_REG,
                last_reading=value,
                date=reading_date,
            )
            summary.vehicles.append(record)
            summary.total_odometer += value
            summary.vehicle_count = len(summary.vehicles)
            latest[vehicle.id] = (summary, record, rank)
            continue

        summary, record, current_rank = current
        if rank > current_rank:
            summary.total_odometer = summary.total_odometer - record.last_reading + value
            record.last_reading = value
            record.date = reading_date
            latest[vehicle.id] = (summary, record, rank)

    return list(depots.values())


def period_window(period: str) -> Optional[timedelta]:
    try:
        return PERIOD_WINDOWS[period]
    except KeyError:
        raise ValueError(f"Unknown period '{period}'") from None


def filter_by_period(
    summaries: Iterable[DepotSummary],
    period: str,
    *,
    now: Optional[datetime] = None,
) -> List[DepotSummary]:
    window = period_window(period)
    now = now or datetime.now()
    if now.tzinfo is not None:
        # Reading dates are naive local calendar days.
        now = now.astimezone().replace(tzinfo=None)
    filtered: List[DepotSummary] = []
    for summary in summaries:
        if window is None:
            kept = [dataclasses.replace(record) for record in summary.vehicles]
        else:
            kept = [
                dataclasses.replace(record)
                for record in summary.vehicles
                if now - datetime.combine(record.date, time.min) <= window
            ]
        if not kept:
            continue
        filtered.append(
            DepotSummary(
                depot=summary.depot,
                total_odometer=sum(record.last_reading for record in kept),
                vehicle_count=len(kept),
                vehicles=kept,
            )
        )
    return filtered


def fleet_totals(summaries: Iterable[DepotSummary]) -> dict[str, float]:
    summary_list = list(summaries)
    return {
        "total_distance": sum(summary.total_odometer for summary in summary_list),
        "depot_count": len(summary_list),
        "vehicle_count": sum(summary.vehicle_count for summary in summary_list),
    }


@dataclass
class OdometerService:
    database: Database

    def add_reading(
        self,
        *,
        requester: User,
        chassis: str,
        value: Any,
        reading_date: Any,
    ) -> OdometerReading:
        require_editor(requester, "record odometer readings")
        vehicle = self.database.get_vehicle_by_chassis(chassis.strip())
        if not vehicle:
            raise LookupError("Vehicle not found")
        parsed_value = _coerce_value(value)
        parsed_date = parse_reading_date(reading_date)
        if parsed_date is None:
            raise ValueError("Reading date must be a valid YYYY-MM-DD date")
        reading = self.database.add_reading(vehicle.id, parsed_value, parsed_date)
        _logger.debug("Recorded %s km for %s on %s", parsed_value, vehicle.chassis, parsed_date)
        return reading

    def readings_for_vehicle(self, chassis: str) -> List[OdometerReading]:
        vehicle = self.database.get_vehicle_by_chassis(chassis)
        if not vehicle:
            raise LookupError("Vehicle not found")
        return list(self.database.list_readings(vehicle_id=vehicle.id))

    def summary(self, period: str = "all", *, now: Optional[datetime] = None) -> List[DepotSummary]:
        period_window(period)
        vehicles = list(self.database.list_vehicles())
        readings = list(self.database.list_readings())
        summaries = summarize(vehicles, readings)
        return filter_by_period(summaries, period, now=now)

    def export_summary_workbook(
        self,
        *,
        generated_by: User,
        period: str = "all",
        now: Optional[datetime] = None,
    ) -> tuple[str, bytes]:
        now = now or datetime.now()
        summaries = self.summary(period, now=now)
        totals = fleet_totals(summaries)

        workbook = Workbook()
        summary_ws = workbook.active
        summary_ws.title = "Summary"

        title_font = Font(size=16, bold=True, color="1B5E20")
        header_font = Font(bold=True, color="1F2A24")
        muted_font = Font(color="5B6657")

        summary_ws["A1"] = "Odometer summary"
        summary_ws["A1"].font = title_font
        summary_ws.merge_cells("A1:D1")
        summary_ws["A2"] = f"Generated for {generated_by.username}"
        summary_ws["A2"].font = muted_font
        summary_ws.merge_cells("A2:D2")
        summary_ws["A3"] = f"{PERIOD_LABELS[period]}, created {now.strftime('%Y-%m-%d %H:%M')}"
        summary_ws["A3"].font = muted_font
        summary_ws.merge_cells("A3:D3")

        summary_ws["A5"], summary_ws["B5"] = "Metric", "Value"
        summary_ws["A5"].font = header_font
        summary_ws["B5"].font = header_font
        metrics = [
            ("Total distance (km)", totals["total_distance"]),
            ("Depots", totals["depot_count"]),
            ("Vehicles", totals["vehicle_count"]),
        ]
        for index, (label, value) in enumerate(metrics, start=6):
            summary_ws.cell(row=index, column=1, value=label)
            summary_ws.cell(row=index, column=2, value=value)

        summary_ws["A10"], summary_ws["B10"], summary_ws["C10"] = "Depot", "Total (km)", "Vehicles"
        for cell in (summary_ws["A10"], summary_ws["B10"], summary_ws["C10"]):
            cell.font = header_font
        for offset, depot in enumerate(summaries, start=11):
            summary_ws.cell(row=offset, column=1, value=depot.depot)
            summary_ws.cell(row=offset, column=2, value=depot.total_odometer)
            summary_ws.cell(row=offset, column=3, value=depot.vehicle_count)

        for column, width in [(1, 26), (2, 18), (3, 12)]:
            summary_ws.column_dimensions[get_column_letter(column)].width = width

        detail_ws = workbook.create_sheet("Vehicles")
        detail_headers = ["Depot", "Registration", "Chassis", "Last reading (km)", "Reading date"]
        detail_ws.append(detail_headers)
        for cell in detail_ws[1]:
            cell.font = header_font
            cell.alignment = Alignment(horizontal="center")

        stripe = PatternFill(start_color="F1F8E9", end_color="F1F8E9", fill_type="solid")
        for depot_index, depot in enumerate(summaries):
            for record in sorted(depot.vehicles, key=lambda item: item.reg):
                detail_ws.append(
                    [
                        depot.depot,
                        record.reg,
                        record.chassis,
                        record.last_reading,
                        record.date.strftime("%Y-%m-%d"),
                    ]
                )
                if depot_index % 2:
                    for cell in detail_ws[detail_ws.max_row]:
                        cell.fill = stripe

        detail_ws.auto_filter.ref = detail_ws.dimensions
        detail_ws.freeze_panes = "A2"
        for column_index in range(1, len(detail_headers) + 1):
            column_letter = get_column_letter(column_index)
            max_length = max(
                (len(str(detail_ws.cell(row=row, column=column_index).value or "")) for row in range(1, detail_ws.max_row + 1)),
                default=10,
            )
            detail_ws.column_dimensions[column_letter].width = min(max(12, max_length + 2), 42)

        filename = f"odometer-summary-{period}-{now.strftime('%Y%m%d-%H%M%S')}.xlsx"
        buffer = io.BytesIO()
        workbook.save(buffer)
        buffer.seek(0)
        return filename, buffer.getvalue()


def _coerce_value(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("Odometer reading must be a number")
    if isinstance(value, str):
        cleaned = value.strip().replace(",", "")
        try:
            value = float(cleaned)
        except ValueError:
            raise ValueError("Odometer reading must be a number") from None
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError("Odometer reading must be a number")
    if value < 0:
        raise ValueError("Odometer reading cannot be negative")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value
