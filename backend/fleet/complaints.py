from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional

from .auth import require_admin, require_editor
from .database import Database
from .models import Complaint, ComplaintStatus, User, Vehicle

MAX_COMPLAINT_LENGTH = 1000

_logger = logging.getLogger(__name__)


@dataclass
class ComplaintView:
    complaint: Complaint
    vehicle: Optional[Vehicle]


@dataclass
class ComplaintService:
    database: Database

    def list_complaints(self, *, status: Optional[ComplaintStatus] = None) -> List[ComplaintView]:
        complaints = list(self.database.list_complaints(status=status))
        vehicles = {
            vehicle_id: self.database.get_vehicle(vehicle_id)
            for vehicle_id in {complaint.vehicle_id for complaint in complaints}
        }
        return [ComplaintView(complaint=complaint, vehicle=vehicles.get(complaint.vehicle_id)) for complaint in complaints]

    def complaints_for_vehicle(self, chassis: str) -> List[Complaint]:
        vehicle = self.database.get_vehicle_by_chassis(chassis)
        if not vehicle:
            raise LookupError("Vehicle not found")
        return list(self.database.list_complaints(vehicle_id=vehicle.id))

    def add_complaint(self, *, requester: User, chassis: str, text: str) -> Complaint:
        require_editor(requester, "file complaints")
        vehicle = self.database.get_vehicle_by_chassis(chassis.strip())
        if not vehicle:
            raise LookupError("Vehicle not found")
        clean_text = (text or "").strip()
        if not clean_text:
            raise ValueError("Complaint description is required.")
        if len(clean_text) > MAX_COMPLAINT_LENGTH:
            raise ValueError(f"Complaint must be {MAX_COMPLAINT_LENGTH} characters or fewer.")
        complaint = self.database.add_complaint(
            vehicle_id=vehicle.id,
            text=clean_text,
            status=ComplaintStatus.OPEN,
            author_id=requester.id,
        )
        _logger.debug("Complaint %s opened for %s by %s", complaint.id, vehicle.chassis, requester.username)
        return complaint

    def clear_complaint(self, *, requester: User, complaint_id: int) -> Complaint:
        require_admin(requester, "clear complaints")
        complaint = self.database.get_complaint(complaint_id)
        if not complaint:
            raise LookupError("Complaint not found")
        if complaint.status is ComplaintStatus.CLEARED:
            raise ValueError("Complaint has already been cleared.")
        _logger.debug("Complaint %s cleared by %s", complaint_id, requester.username)
        return self.database.update_complaint_status(complaint_id, ComplaintStatus.CLEARED)

    def complaint_counts(self) -> dict[str, int]:
        counts = Counter(complaint.status for complaint in self.database.list_complaints())
        return {status.value: counts.get(status, 0) for status in ComplaintStatus}
