from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Generator, Iterable, Optional

from .models import (
    Complaint,
    ComplaintStatus,
    Document,
    DocumentType,
    OdometerReading,
    SessionToken,
    User,
    UserRole,
    Vehicle,
)

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
DATE_FORMAT = "%Y-%m-%d"

VEHICLE_COLUMNS = (
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
)

_logger = logging.getLogger(__name__)


class Database:
    """SQLite backed persistence for the fleet dashboard."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def initialize(self) -> None:
        _logger.debug("Initializing fleet database at %s", self.path)
        with self._connect() as conn:
            conn.executescript(
                """
                PRAGMA foreign_keys = ON;
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS session_tokens (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    token TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS vehicles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    chassis TEXT NOT NULL UNIQUE,
                    reg TEXT,
                    depot TEXT,
                    motor TEXT,
                    model TEXT,
                    colour TEXT,
                    seating INTEGER,
                    motor_kw INTEGER,
                    dispatch_date TEXT,
                    registration_date TEXT,
                    manufacturing_date TEXT
                );
                CREATE TABLE IF NOT EXISTS odometer_readings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    vehicle_id INTEGER NOT NULL REFERENCES vehicles(id),
                    value REAL NOT NULL,
                    date TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_odometer_readings_vehicle
                    ON odometer_readings(vehicle_id, date);
                CREATE TABLE IF NOT EXISTS complaints (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    vehicle_id INTEGER NOT NULL REFERENCES vehicles(id),
                    text TEXT NOT NULL,
                    status TEXT NOT NULL,
                    author_id INTEGER REFERENCES users(id),
                    created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    vehicle_id INTEGER NOT NULL REFERENCES vehicles(id),
                    document_type TEXT NOT NULL,
                    filename TEXT NOT NULL,
                    stored_name TEXT NOT NULL UNIQUE,
                    content_type TEXT NOT NULL,
                    size INTEGER NOT NULL,
                    uploaded_by INTEGER NOT NULL REFERENCES users(id),
                    uploaded_at TEXT NOT NULL
                );
            """
            )

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    @contextmanager
    def session(self) -> Generator[sqlite3.Connection, None, None]:
        with self._connect() as conn:
            yield conn

    # User operations
    def add_user(self, username: str, password_hash: str, role: UserRole) -> User:
        now = _utcnow()
        with self.session() as conn:
            cursor = conn.execute(
                "INSERT INTO users (username, password_hash, role, created_at) VALUES (?, ?, ?, ?)",
                (username, password_hash, role.value, _format_datetime(now)),
            )
            user_id = cursor.lastrowid
        return User(id=user_id, username=username, password_hash=password_hash, role=role, created_at=now)

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self.session() as conn:
            row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
        return _row_to_user(row) if row else None

    def get_user(self, user_id: int) -> Optional[User]:
        with self.session() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _row_to_user(row) if row else None

    # Session token operations
    def add_session_token(self, user_id: int, token: str, expires_at: datetime) -> SessionToken:
        created_at = _utcnow()
        with self.session() as conn:
            cursor = conn.execute(
                "INSERT INTO session_tokens (user_id, token, created_at, expires_at) VALUES (?, ?, ?, ?)",
                (user_id, token, _format_datetime(created_at), _format_datetime(expires_at)),
            )
            token_id = cursor.lastrowid
        return SessionToken(id=token_id, user_id=user_id, token=token, created_at=created_at, expires_at=expires_at)

    def get_session_token(self, token: str) -> Optional[SessionToken]:
        with self.session() as conn:
            row = conn.execute("SELECT * FROM session_tokens WHERE token = ?", (token,)).fetchone()
        return _row_to_session_token(row) if row else None

    def delete_session_token(self, token: str) -> None:
        with self.session() as conn:
            conn.execute("DELETE FROM session_tokens WHERE token = ?", (token,))

    def purge_expired_tokens(self, now: Optional[datetime] = None) -> int:
        now = now or _utcnow()
        with self.session() as conn:
            cursor = conn.execute("DELETE FROM session_tokens WHERE expires_at < ?", (_format_datetime(now),))
        return cursor.rowcount

    # Vehicle operations
    def add_vehicle(self, **attributes: Any) -> Vehicle:
        values = [_to_column(attributes.get(column)) for column in VEHICLE_COLUMNS]
        placeholders = ", ".join("?" for _ in VEHICLE_COLUMNS)
        with self.session() as conn:
            cursor = conn.execute(
                f"INSERT INTO vehicles ({', '.join(VEHICLE_COLUMNS)}) VALUES ({placeholders})",
                values,
            )
            vehicle_id = cursor.lastrowid
        vehicle = self.get_vehicle(vehicle_id)
        assert vehicle is not None
        return vehicle

    def get_vehicle(self, vehicle_id: int) -> Optional[Vehicle]:
        with self.session() as conn:
            row = conn.execute("SELECT * FROM vehicles WHERE id = ?", (vehicle_id,)).fetchone()
        return _row_to_vehicle(row) if row else None

    def get_vehicle_by_chassis(self, chassis: str) -> Optional[Vehicle]:
        with self.session() as conn:
            row = conn.execute("SELECT * FROM vehicles WHERE chassis = ?", (chassis,)).fetchone()
        return _row_to_vehicle(row) if row else None

    def list_vehicles(self) -> Iterable[Vehicle]:
        with self.session() as conn:
            rows = conn.execute("SELECT * FROM vehicles ORDER BY depot, reg, chassis").fetchall()
        for row in rows:
            yield _row_to_vehicle(row)

    # Odometer operations
    def add_reading(self, vehicle_id: int, value: float, reading_date: date) -> OdometerReading:
        with self.session() as conn:
            cursor = conn.execute(
                "INSERT INTO odometer_readings (vehicle_id, value, date) VALUES (?, ?, ?)",
                (vehicle_id, value, _format_date(reading_date)),
            )
            reading_id = cursor.lastrowid
        return OdometerReading(id=reading_id, vehicle_id=vehicle_id, value=value, date=reading_date)

    def list_readings(self, *, vehicle_id: Optional[int] = None) -> Iterable[OdometerReading]:
        query = "SELECT * FROM odometer_readings"
        params: list[Any] = []
        if vehicle_id is not None:
            query += " WHERE vehicle_id = ?"
            params.append(vehicle_id)
        query += " ORDER BY date DESC, id DESC"
        with self.session() as conn:
            rows = conn.execute(query, params).fetchall()
        for row in rows:
            yield _row_to_reading(row)

    # Complaint operations
    def add_complaint(
        self,
        *,
        vehicle_id: int,
        text: str,
        status: ComplaintStatus,
        author_id: Optional[int],
    ) -> Complaint:
        now = _utcnow()
        with self.session() as conn:
            cursor = conn.execute(
                "INSERT INTO complaints (vehicle_id, text, status, author_id, created_at) VALUES (?, ?, ?, ?, ?)",
                (vehicle_id, text, status.value, author_id, _format_datetime(now)),
            )
            complaint_id = cursor.lastrowid
        return Complaint(
            id=complaint_id,
            vehicle_id=vehicle_id,
            text=text,
            status=status,
            created_at=now,
            author_id=author_id,
        )

    def get_complaint(self, complaint_id: int) -> Optional[Complaint]:
        with self.session() as conn:
            row = conn.execute("SELECT * FROM complaints WHERE id = ?", (complaint_id,)).fetchone()
        return _row_to_complaint(row) if row else None

    def update_complaint_status(self, complaint_id: int, status: ComplaintStatus) -> Complaint:
        with self.session() as conn:
            conn.execute("UPDATE complaints SET status = ? WHERE id = ?", (status.value, complaint_id))
        complaint = self.get_complaint(complaint_id)
        assert complaint is not None
        return complaint

    def list_complaints(
        self,
        *,
        vehicle_id: Optional[int] = None,
        status: Optional[ComplaintStatus] = None,
    ) -> Iterable[Complaint]:
        query = "SELECT * FROM complaints"
        params: list[Any] = []
        clauses: list[str] = []
        if vehicle_id is not None:
            clauses.append("vehicle_id = ?")
            params.append(vehicle_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC, id DESC"

        with self.session() as conn:
            rows = conn.execute(query, params).fetchall()
        for row in rows:
            yield _row_to_complaint(row)

    # Document operations
    def add_document(
        self,
        *,
        vehicle_id: int,
        document_type: DocumentType,
        filename: str,
        stored_name: str,
        content_type: str,
        size: int,
        uploaded_by: int,
    ) -> Document:
        now = _utcnow()
        with self.session() as conn:
            cursor = conn.execute(
                """
                INSERT INTO documents (
                    vehicle_id, document_type, filename, stored_name,
                    content_type, size, uploaded_by, uploaded_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    vehicle_id,
                    document_type.value,
                    filename,
                    stored_name,
                    content_type,
                    size,
                    uploaded_by,
                    _format_datetime(now),
                ),
            )
            document_id = cursor.lastrowid
        return Document(
            id=document_id,
            vehicle_id=vehicle_id,
            document_type=document_type,
            filename=filename,
            stored_name=stored_name,
            content_type=content_type,
            size=size,
            uploaded_by=uploaded_by,
            uploaded_at=now,
        )

    def get_document(self, document_id: int) -> Optional[Document]:
        with self.session() as conn:
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(
        self,
        *,
        document_type: DocumentType,
        vehicle_id: Optional[int] = None,
    ) -> Iterable[Document]:
        query = "SELECT * FROM documents WHERE document_type = ?"
        params: list[Any] = [document_type.value]
        if vehicle_id is not None:
            query += " AND vehicle_id = ?"
            params.append(vehicle_id)
        query += " ORDER BY uploaded_at DESC, id DESC"
        with self.session() as conn:
            rows = conn.execute(query, params).fetchall()
        for row in rows:
            yield _row_to_document(row)


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        password_hash=row["password_hash"],
        role=UserRole(row["role"]),
        created_at=_parse_datetime(row["created_at"]),
    )


def _row_to_session_token(row: sqlite3.Row) -> SessionToken:
    return SessionToken(
        id=row["id"],
        user_id=row["user_id"],
        token=row["token"],
        created_at=_parse_datetime(row["created_at"]),
        expires_at=_parse_datetime(row["expires_at"]),
    )


def _row_to_vehicle(row: sqlite3.Row) -> Vehicle:
    return Vehicle(
        id=row["id"],
        chassis=row["chassis"],
        reg=row["reg"],
        depot=row["depot"],
        motor=row["motor"],
        model=row["model"],
        colour=row["colour"],
        seating=row["seating"],
        motor_kw=row["motor_kw"],
        dispatch_date=_parse_date(row["dispatch_date"]) if row["dispatch_date"] else None,
        registration_date=_parse_date(row["registration_date"]) if row["registration_date"] else None,
        manufacturing_date=_parse_date(row["manufacturing_date"]) if row["manufacturing_date"] else None,
    )


def _row_to_reading(row: sqlite3.Row) -> OdometerReading:
    # Left as stored text when it does not parse; the aggregator reports and skips those.
    raw = row["date"]
    try:
        reading_date: Any = _parse_date(raw)
    except (TypeError, ValueError):
        reading_date = raw
    return OdometerReading(id=row["id"], vehicle_id=row["vehicle_id"], value=row["value"], date=reading_date)


def _row_to_complaint(row: sqlite3.Row) -> Complaint:
    return Complaint(
        id=row["id"],
        vehicle_id=row["vehicle_id"],
        text=row["text"],
        status=ComplaintStatus(row["status"]),
        created_at=_parse_datetime(row["created_at"]),
        author_id=row["author_id"],
    )


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        vehicle_id=row["vehicle_id"],
        document_type=DocumentType(row["document_type"]),
        filename=row["filename"],
        stored_name=row["stored_name"],
        content_type=row["content_type"],
        size=row["size"],
        uploaded_by=row["uploaded_by"],
        uploaded_at=_parse_datetime(row["uploaded_at"]),
    )


def _to_column(value: Any) -> Any:
    if isinstance(value, datetime):
        return _format_date(value.date())
    if isinstance(value, date):
        return _format_date(value)
    return value


def _utcnow() -> datetime:
    return datetime.utcnow()


def _format_datetime(value: datetime) -> str:
    return value.strftime(ISO_FORMAT)


def _parse_datetime(value: str) -> datetime:
    return datetime.strptime(value, ISO_FORMAT)


def _format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def _parse_date(value: str) -> date:
    return datetime.strptime(value, DATE_FORMAT).date()
