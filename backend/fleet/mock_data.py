"""Utility helpers for seeding a sizeable mock fleet with odometer history."""

from __future__ import annotations

import argparse
import logging
import random
import textwrap
from datetime import date, timedelta
from pathlib import Path
from typing import Optional

from .app import FleetDashboardApp
from .models import ComplaintStatus, Vehicle

MOCK_DEPOTS: dict[str, tuple[str, ...]] = {
    "KA": ("Depot A", "Depot B", "Depot E", "Depot G"),
    "TN": ("Chennai Depot", "Coimbatore Depot", "Madurai Depot", "Salem Depot"),
    "AP": ("Hyderabad Depot", "Vijayawada Depot", "Tirupati Depot"),
    "RJ": ("Jaipur Depot", "Udaipur Depot", "Kota Depot"),
}

STATE_PREFIXES: dict[str, str] = {"KA": "KA51", "TN": "TN33", "AP": "AP28", "RJ": "RJ14"}

MOCK_COLOURS = ("White", "Blue", "Green", "Yellow", "Orange", "Silver", "Maroon", "Teal")

MOCK_COMPLAINTS = (
    "AC not working properly",
    "Battery charging issue",
    "Door mechanism fault",
    "Brake system needs adjustment",
    "Display panel malfunction",
    "Regenerative braking warning light on",
    "Wheelchair ramp sticking",
)

_logger = logging.getLogger(__name__)


def _build_vehicles(app: FleetDashboardApp, *, count: int, rng: random.Random) -> list[Vehicle]:
    vehicles: list[Vehicle] = []
    serial = 5000
    states = sorted(MOCK_DEPOTS)
    while len(vehicles) < count:
        serial += 1
        chassis = f"ME9MEBA00324{serial:07d}AL"
        if app.database.get_vehicle_by_chassis(chassis):
            continue
        state = states[len(vehicles) % len(states)]
        dispatch = date(2024, 1, 1) + timedelta(days=rng.randint(0, 270))
        pending = rng.random() < 0.1
        vehicles.append(
            app.database.add_vehicle(
                chassis=chassis,
                reg="Pending" if pending else f"{STATE_PREFIXES[state]}AL{serial:04d}",
                depot=rng.choice(MOCK_DEPOTS[state]),
                motor=f"M{serial}",
                model="EV Coach",
                colour=rng.choice(MOCK_COLOURS),
                seating=rng.randint(31, 55),
                motor_kw=rng.choice((155, 175, 200, 215, 230, 250)),
                dispatch_date=dispatch,
                registration_date=None if pending else dispatch + timedelta(days=1),
                manufacturing_date=dispatch - timedelta(days=rng.randint(10, 20)),
            )
        )
    return vehicles


def generate_mock_data(
    app: FleetDashboardApp,
    *,
    vehicles: int = 40,
    readings_per_vehicle: int = 6,
    seed: int = 42,
    today: Optional[date] = None,
) -> list[Vehicle]:
    rng = random.Random(seed)
    today = today or date.today()
    fleet = _build_vehicles(app, count=vehicles, rng=rng)

    for vehicle in fleet:
        # A few buses never report, so the summary's omit rule has something to omit.
        if rng.random() < 0.08:
            continue
        distance = rng.randint(500, 4000)
        reading_date = today - timedelta(days=rng.randint(45, 120))
        for _ in range(readings_per_vehicle):
            app.database.add_reading(vehicle.id, distance, reading_date)
            distance += rng.randint(150, 1800)
            reading_date = min(today, reading_date + timedelta(days=rng.randint(1, 20)))

        if rng.random() < 0.2:
            app.database.add_complaint(
                vehicle_id=vehicle.id,
                text=rng.choice(MOCK_COMPLAINTS),
                status=ComplaintStatus.OPEN if rng.random() < 0.6 else ComplaintStatus.CLEARED,
                author_id=None,
            )
    _logger.debug("Generated %d mock vehicles", len(fleet))
    return fleet


def _summarize(app: FleetDashboardApp) -> str:
    summaries = app.odometer_summary()
    total_vehicles = len(app.list_vehicles())
    reporting = sum(summary.vehicle_count for summary in summaries)
    distance = sum(summary.total_odometer for summary in summaries)
    return textwrap.dedent(
        f"""
        Fleet holds {total_vehicles} vehicles across {len(summaries)} reporting depots.
        {reporting} vehicles have odometer readings, {distance:,.0f} km in total.
        """
    ).strip()


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a mock electric bus fleet.")
    parser.add_argument(
        "--database",
        default="fleet_dashboard.db",
        help="Path to the SQLite database file (default: %(default)s)",
    )
    parser.add_argument(
        "--vehicles",
        type=int,
        default=40,
        help="Number of extra buses to generate (default: %(default)s)",
    )
    parser.add_argument(
        "--readings",
        type=int,
        default=6,
        help="Odometer readings per bus (default: %(default)s)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed for reproducible data (default: %(default)s)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    app = FleetDashboardApp.create(Path(args.database))
    app.seed_defaults()
    generate_mock_data(app, vehicles=args.vehicles, readings_per_vehicle=args.readings, seed=args.seed)
    print(_summarize(app))


if __name__ == "__main__":  # pragma: no cover - script entry point
    main()
