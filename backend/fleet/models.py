from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Union


class UserRole(str, Enum):
    ADMIN = "admin"
    UPLOAD = "upload"
    GUEST = "guest"


@dataclass
class User:
    id: int
    username: str
    password_hash: str
    role: UserRole
    created_at: datetime


@dataclass
class SessionToken:
    id: int
    user_id: int
    token: str
    created_at: datetime
    expires_at: datetime


@dataclass
class Vehicle:
    id: int
    chassis: str
    reg: Optional[str] = None
    depot: Optional[str] = None
    motor: Optional[str] = None
    model: Optional[str] = None
    colour: Optional[str] = None
    seating: Optional[int] = None
    motor_kw: Optional[int] = None
    dispatch_date: Optional[date] = None
    registration_date: Optional[date] = None
    manufacturing_date: Optional[date] = None


@dataclass
class OdometerReading:
    id: int
    vehicle_id: int
    value: float
    # Stored readings carry a date; callers may hand in raw strings.
    date: Union[date, datetime, str, None]


@dataclass
class VehicleReading:
    chassis: str
    reg: str
    last_reading: float
    date: date


@dataclass
class DepotSummary:
    depot: str
    total_odometer: float = 0
    vehicle_count: int = 0
    vehicles: List[VehicleReading] = field(default_factory=list)


class ComplaintStatus(str, Enum):
    OPEN = "open"
    CLEARED = "cleared"


@dataclass
class Complaint:
    id: int
    vehicle_id: int
    text: str
    status: ComplaintStatus
    created_at: datetime
    author_id: Optional[int] = None


class DocumentType(str, Enum):
    SOP = "sop"
    RETRO = "retro"


@dataclass
class Document:
    id: int
    vehicle_id: int
    document_type: DocumentType
    filename: str
    stored_name: str
    content_type: str
    size: int
    uploaded_by: int
    uploaded_at: datetime
