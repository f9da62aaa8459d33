from __future__ import annotations

import logging
import mimetypes
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .auth import require_editor
from .config import DEFAULT_MAX_UPLOAD_BYTES
from .database import Database
from .models import Document, DocumentType, User

MAX_DOCUMENT_BYTES = DEFAULT_MAX_UPLOAD_BYTES
ALLOWED_EXTENSIONS = frozenset({"xlsx", "xls", "csv", "pdf"})

_logger = logging.getLogger(__name__)


@dataclass
class StoredDocument:
    document: Document
    path: Path


@dataclass
class DocumentService:
    database: Database
    storage_dir: Path
    max_bytes: int = MAX_DOCUMENT_BYTES

    def __post_init__(self) -> None:
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def upload(
        self,
        *,
        requester: User,
        chassis: str,
        document_type: DocumentType,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> Document:
        require_editor(requester, "upload files")
        vehicle = self.database.get_vehicle_by_chassis(chassis.strip())
        if not vehicle:
            raise LookupError("Vehicle not found")
        clean_name = Path(filename or "").name.strip()
        if not clean_name:
            raise ValueError("A file is required.")
        extension = clean_name.rsplit(".", 1)[-1].lower() if "." in clean_name else ""
        if extension not in ALLOWED_EXTENSIONS:
            raise ValueError("Only XLSX, XLS, CSV, and PDF files are allowed.")
        if not data:
            raise ValueError("The uploaded file is empty.")
        if len(data) > self.max_bytes:
            limit_mb = self.max_bytes / (1024 * 1024)
            raise ValueError(f"File is too large. Maximum size is {limit_mb:g}MB.")

        stored_name = f"{uuid.uuid4().hex}.{extension}"
        stored_path = self.storage_dir / stored_name
        stored_path.write_bytes(data)
        guessed = mimetypes.guess_type(clean_name)[0]
        try:
            document = self.database.add_document(
                vehicle_id=vehicle.id,
                document_type=document_type,
                filename=clean_name,
                stored_name=stored_name,
                content_type=content_type or guessed or "application/octet-stream",
                size=len(data),
                uploaded_by=requester.id,
            )
        except Exception:
            stored_path.unlink(missing_ok=True)
            raise
        _logger.debug("Stored %s document %s for %s as %s", document_type.value, clean_name, vehicle.chassis, stored_name)
        return document

    def list_documents(self, document_type: DocumentType, chassis: Optional[str] = None) -> List[Document]:
        if not chassis:
            if document_type is DocumentType.RETRO:
                return []
            return list(self.database.list_documents(document_type=document_type))
        vehicle = self.database.get_vehicle_by_chassis(chassis)
        if not vehicle:
            raise LookupError("Vehicle not found")
        return list(self.database.list_documents(document_type=document_type, vehicle_id=vehicle.id))

    def open_document(self, document_id: int) -> StoredDocument:
        document = self.database.get_document(document_id)
        if not document:
            raise LookupError("Document not found")
        path = self.storage_dir / document.stored_name
        if not path.exists():
            _logger.warning("Document %s is missing its stored file %s", document_id, path)
            raise LookupError("Document file is missing")
        return StoredDocument(document=document, path=path)
