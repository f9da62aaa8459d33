from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

from .auth import AuthService, require_admin
from .complaints import ComplaintService, ComplaintView
from .config import DashboardConfig
from .database import Database
from .documents import DocumentService, StoredDocument
from .models import (
    Complaint,
    ComplaintStatus,
    DepotSummary,
    Document,
    DocumentType,
    OdometerReading,
    User,
    UserRole,
    Vehicle,
)
from .odometer import OdometerService

PENDING_REG = "Pending"

REGISTRATION_STATES: dict[str, str] = {
    "KA": "Karnataka",
    "TN": "Tamil Nadu",
    "AP": "Andhra Pradesh",
    "RJ": "Rajasthan",
}

DEFAULT_ACCOUNTS: tuple[tuple[str, str, UserRole], ...] = (
    ("admin", "admin", UserRole.ADMIN),
    ("upload", "upload", UserRole.UPLOAD),
    ("guest", "guest", UserRole.GUEST),
)

# chassis, reg, depot, motor, colour, seating, motor kW, dispatch date
DEFAULT_FLEET: tuple[tuple[str, str, str, str, str, int, int, str], ...] = (
    ("ME9MEBA0032482141AL", "KA51AL0084", "Depot A", "M123", "White", 40, 200, "2024-01-01"),
    ("ME9MEBA0032482141BL", "KA51AL0085", "Depot B", "M124", "Blue", 45, 220, "2024-01-05"),
    ("ME9MEBA0032482142AL", "KA51AL0086", "Depot A", "M125", "White", 40, 200, "2024-01-10"),
    ("ME9MEBA0032482143AL", "KA51AL0087", "Depot C", "M126", "Green", 42, 210, "2024-01-15"),
    ("ME9MEBA0032482144AL", "KA51AL0088", "Depot B", "M127", "Blue", 45, 220, "2024-01-20"),
    ("ME9MEBA0032482150AL", "TN33AL0001", "Chennai Depot", "M133", "Yellow", 44, 215, "2024-02-20"),
    ("ME9MEBA0032482151AL", "TN33AL0002", "Chennai Depot", "M134", "Yellow", 44, 215, "2024-02-25"),
    ("ME9MEBA0032482153AL", "AP28AL0001", "Hyderabad Depot", "M136", "Orange", 46, 225, "2024-03-05"),
    ("ME9MEBA0032482155AL", "RJ14AL0001", "Jaipur Depot", "M138", "Pink", 41, 205, "2024-03-15"),
    ("ME9MEBA0032482160AL", "KA51AL0097", "Depot F", "M143", "Black", 39, 190, "2024-04-10"),
)

DEFAULT_READINGS: tuple[tuple[str, int, str], ...] = (
    ("ME9MEBA0032482141AL", 15250, "2024-01-15"),
    ("ME9MEBA0032482141BL", 18750, "2024-01-14"),
    ("ME9MEBA0032482142AL", 12500, "2024-02-01"),
    ("ME9MEBA0032482143AL", 9800, "2024-02-10"),
    ("ME9MEBA0032482144AL", 22100, "2024-02-15"),
    ("ME9MEBA0032482150AL", 8500, "2024-03-01"),
    ("ME9MEBA0032482153AL", 14200, "2024-03-10"),
    ("ME9MEBA0032482155AL", 6750, "2024-03-20"),
    ("ME9MEBA0032482160AL", 11900, "2024-04-15"),
)

DEFAULT_COMPLAINTS: tuple[tuple[str, str, ComplaintStatus], ...] = (
    ("ME9MEBA0032482141AL", "AC not working properly", ComplaintStatus.OPEN),
    ("ME9MEBA0032482141BL", "Battery charging issue", ComplaintStatus.CLEARED),
    ("ME9MEBA0032482142AL", "Door mechanism fault", ComplaintStatus.OPEN),
    ("ME9MEBA0032482150AL", "Brake system needs adjustment", ComplaintStatus.CLEARED),
    ("ME9MEBA0032482153AL", "Display panel malfunction", ComplaintStatus.OPEN),
)

SAMPLE_IMPORT_ROWS: tuple[dict[str, Any], ...] = (
    {
        "chassis": "CHASSIS001",
        "reg": "KA01AB1234",
        "depot": "Depot A",
        "motor": "MOTOR001",
        "model": "Electric Bus Model A",
        "colour": "White",
        "seating": 50,
        "motor_kw": 150,
    },
    {
        "chassis": "CHASSIS002",
        "reg": "KA01AB1235",
        "depot": "Depot B",
        "motor": "MOTOR002",
        "model": "Electric Bus Model B",
        "colour": "Blue",
        "seating": 45,
        "motor_kw": 140,
    },
    {
        "chassis": "CHASSIS003",
        "reg": "KA01AB1236",
        "depot": "Depot A",
        "motor": "MOTOR003",
        "model": "Electric Bus Model A",
        "colour": "Green",
        "seating": 50,
        "motor_kw": 150,
    },
)

_logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    added: List[Vehicle] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def message(self) -> str:
        return f"Import completed: {len(self.added)} vehicles added, {self.failed} failed"


@dataclass
class FleetDashboardApp:
    database: Database
    auth: AuthService
    odometer: OdometerService
    complaints: ComplaintService
    documents: DocumentService

    @classmethod
    def create(
        cls,
        database_path: Path,
        *,
        storage_dir: Optional[Path] = None,
        config: Optional[DashboardConfig] = None,
    ) -> "FleetDashboardApp":
        config = config or DashboardConfig()
        database = Database(database_path)
        database.initialize()
        return cls(
            database=database,
            auth=AuthService(database, token_expiry_minutes=config.session_ttl_minutes),
            odometer=OdometerService(database),
            complaints=ComplaintService(database),
            documents=DocumentService(
                database,
                storage_dir=storage_dir or database_path.parent / "documents",
                max_bytes=config.max_upload_bytes,
            ),
        )

    @classmethod
    def from_config(cls, config: DashboardConfig) -> "FleetDashboardApp":
        return cls.create(config.database_path, storage_dir=config.storage_dir, config=config)

    def seed_defaults(self) -> None:
        for username, password, role in DEFAULT_ACCOUNTS:
            if not self.database.get_user_by_username(username):
                self.auth.register_user(username, password, role=role)

        seeded: list[Vehicle] = []
        for chassis, reg, depot, motor, colour, seating, motor_kw, dispatch in DEFAULT_FLEET:
            if self.database.get_vehicle_by_chassis(chassis):
                continue
            seeded.append(
                self.database.add_vehicle(
                    chassis=chassis,
                    reg=reg,
                    depot=depot,
                    motor=motor,
                    model="EV Coach",
                    colour=colour,
                    seating=seating,
                    motor_kw=motor_kw,
                    dispatch_date=_parse_optional_date(dispatch, "Dispatch date"),
                )
            )
        if not seeded:
            return

        new_chassis = {vehicle.chassis: vehicle for vehicle in seeded}
        for chassis, value, reading_date in DEFAULT_READINGS:
            vehicle = new_chassis.get(chassis)
            if vehicle:
                self.database.add_reading(vehicle.id, value, _parse_optional_date(reading_date, "Reading date"))
        for chassis, text, status in DEFAULT_COMPLAINTS:
            vehicle = new_chassis.get(chassis)
            if vehicle:
                self.database.add_complaint(vehicle_id=vehicle.id, text=text, status=status, author_id=None)
        _logger.info("Seeded %d demo vehicles", len(seeded))

    # Vehicle operations
    def list_vehicles(self) -> List[Vehicle]:
        return list(self.database.list_vehicles())

    def get_vehicle(self, vehicle_id: int) -> Vehicle:
        vehicle = self.database.get_vehicle(vehicle_id)
        if not vehicle:
            raise LookupError("Vehicle not found")
        return vehicle

    def get_vehicle_by_chassis(self, chassis: str) -> Vehicle:
        vehicle = self.database.get_vehicle_by_chassis(chassis)
        if not vehicle:
            raise LookupError("Vehicle not found")
        return vehicle

    def add_vehicle(self, *, requester: User, **attributes: Any) -> Vehicle:
        require_admin(requester, "add vehicles")
        cleaned = _clean_vehicle_attributes(attributes)
        if self.database.get_vehicle_by_chassis(cleaned["chassis"]):
            raise ValueError(f"Chassis number {cleaned['chassis']} already exists")
        vehicle = self.database.add_vehicle(**cleaned)
        _logger.debug("Vehicle %s added to %s", vehicle.chassis, vehicle.depot)
        return vehicle

    def bulk_import(self, *, requester: User, rows: Iterable[Mapping[str, Any]]) -> ImportResult:
        require_admin(requester, "import vehicles")
        result = ImportResult()
        for index, row in enumerate(rows, start=1):
            try:
                result.added.append(self.add_vehicle(requester=requester, **dict(row)))
            except (ValueError, LookupError) as exc:
                label = row.get("chassis") or f"row {index}"
                result.errors.append(f"{label}: {exc}")
        _logger.info("%s", result.message)
        return result

    @staticmethod
    def registration_state(reg: Optional[str]) -> str:
        if not reg or reg.strip().lower() == PENDING_REG.lower():
            return "N/A"
        return REGISTRATION_STATES.get(reg.strip()[:2].upper(), "Unknown")

    # Odometer operations
    def add_reading(self, *, requester: User, chassis: str, value: Any, reading_date: Any) -> OdometerReading:
        return self.odometer.add_reading(requester=requester, chassis=chassis, value=value, reading_date=reading_date)

    def readings_for_vehicle(self, chassis: str) -> List[OdometerReading]:
        return self.odometer.readings_for_vehicle(chassis)

    def odometer_summary(self, period: str = "all", *, now: Optional[datetime] = None) -> List[DepotSummary]:
        return self.odometer.summary(period, now=now)

    def export_odometer_summary(
        self,
        *,
        requester: User,
        period: str = "all",
        now: Optional[datetime] = None,
    ) -> tuple[str, bytes]:
        return self.odometer.export_summary_workbook(generated_by=requester, period=period, now=now)

    # Complaint operations
    def list_complaints(self, *, status: Optional[ComplaintStatus] = None) -> List[ComplaintView]:
        return self.complaints.list_complaints(status=status)

    def add_complaint(self, *, requester: User, chassis: str, text: str) -> Complaint:
        return self.complaints.add_complaint(requester=requester, chassis=chassis, text=text)

    def clear_complaint(self, *, requester: User, complaint_id: int) -> Complaint:
        return self.complaints.clear_complaint(requester=requester, complaint_id=complaint_id)

    # Document operations
    def upload_document(
        self,
        *,
        requester: User,
        chassis: str,
        document_type: DocumentType,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> Document:
        return self.documents.upload(
            requester=requester,
            chassis=chassis,
            document_type=document_type,
            filename=filename,
            data=data,
            content_type=content_type,
        )

    def list_documents(self, document_type: DocumentType, chassis: Optional[str] = None) -> List[Document]:
        return self.documents.list_documents(document_type, chassis)

    def open_document(self, document_id: int) -> StoredDocument:
        return self.documents.open_document(document_id)


def _clean_vehicle_attributes(attributes: Mapping[str, Any]) -> dict[str, Any]:
    unexpected = set(attributes) - {
        "chassis",
        "reg",
        "depot",
        "motor",
        "model",
        "colour",
        "seating",
        "motor_kw",
        "dispatch_date",
        "registration_date",
        "manufacturing_date",
    }
    if unexpected:
        raise ValueError(f"Unexpected vehicle field '{sorted(unexpected)[0]}'")
    chassis = str(attributes.get("chassis") or "").strip().upper()
    if not chassis:
        raise ValueError("Chassis number is required")
    cleaned: dict[str, Any] = {"chassis": chassis}
    reg = str(attributes.get("reg") or "").strip().upper()
    cleaned["reg"] = reg or PENDING_REG
    for key in ("depot", "motor", "model", "colour"):
        value = str(attributes.get(key) or "").strip()
        cleaned[key] = value or None
    cleaned["seating"] = _parse_optional_int(attributes.get("seating"), "Seating capacity")
    cleaned["motor_kw"] = _parse_optional_int(attributes.get("motor_kw"), "Motor power")
    cleaned["dispatch_date"] = _parse_optional_date(attributes.get("dispatch_date"), "Dispatch date")
    cleaned["registration_date"] = _parse_optional_date(attributes.get("registration_date"), "Registration date")
    cleaned["manufacturing_date"] = _parse_optional_date(attributes.get("manufacturing_date"), "Manufacturing date")
    return cleaned


def _parse_optional_int(value: Any, label: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{label} must be a whole number")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str) and value.strip().isdigit():
        result = int(value.strip())
    else:
        raise ValueError(f"{label} must be a whole number")
    if result < 0:
        raise ValueError(f"{label} cannot be negative")
    return result


def _parse_optional_date(value: Any, label: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip().split("T", 1)[0], "%Y-%m-%d").date()
    except ValueError as exc:
        raise ValueError(f"{label} must be a YYYY-MM-DD date") from exc
