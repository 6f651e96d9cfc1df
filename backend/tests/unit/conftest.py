from datetime import datetime, timezone
from pathlib import Path
from typing import Dict

import pytest

from backend.src.models.document import DocumentRecord, FolderRecord
from backend.src.services.database import DatabaseService
from backend.src.services.document_index import DocumentIndexService

KB = 1024
MB = 1024 * 1024


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture()
def db_service(tmp_path: Path) -> DatabaseService:
    service = DatabaseService(tmp_path / "documents.db")
    service.initialize()
    return service


@pytest.fixture()
def index_service(db_service: DatabaseService) -> DocumentIndexService:
    return DocumentIndexService(db_service)


@pytest.fixture()
def corpus(index_service: DocumentIndexService) -> Dict[str, str]:
    """Four documents for alice, one for bob. Returns name -> id (folders included)."""
    vacation = index_service.upsert_folder(
        FolderRecord(user_id="alice", name="2024", path="/vacation/2024")
    )
    tax = index_service.upsert_folder(
        FolderRecord(user_id="alice", name="tax", path="/documents/tax")
    )

    ids = {"vacation_folder": vacation, "tax_folder": tax}
    ids["beach"] = index_service.index_document(
        DocumentRecord(
            user_id="alice",
            folder_id=vacation,
            original_filename="beach.jpg",
            mime_type="image/jpeg",
            size_bytes=2 * MB,
            document_category="photo",
            created_at=utc(2024, 7, 1, 9, 0),
            has_meaningful_text=False,
            llm_summary="A sunny vacation beach with palm trees",
            thumbnail_path="thumbs/beach.webp",
            thumbnail_blurhash="LEHV6nWB2yk8",
            tags=["holiday"],
        )
    )
    ids["apple"] = index_service.index_document(
        DocumentRecord(
            user_id="alice",
            folder_id=tax,
            original_filename="apple-statement.pdf",
            mime_type="application/pdf",
            size_bytes=500 * KB,
            document_category="stock_overview",
            extracted_date=utc(2023, 12, 31),
            created_at=utc(2024, 3, 10, 12, 0),
            has_meaningful_text=True,
            raw_text="Apple Inc quarterly stock overview with a dividend payment schedule",
            companies=["Apple"],
            llm_summary="Quarterly overview of Apple holdings",
            tags=["tax", "important"],
        )
    )
    ids["receipt"] = index_service.index_document(
        DocumentRecord(
            user_id="alice",
            original_filename="receipt-coffee.png",
            mime_type="image/png",
            size_bytes=120 * KB,
            document_category="transaction_receipt",
            extracted_date=utc(2025, 1, 4),
            created_at=utc(2025, 1, 5, 8, 30),
            has_meaningful_text=True,
            raw_text="Coffee shop receipt total 4.50",
            llm_metadata={"keyEntities": ["John Smith"]},
            tags=["tax"],
        )
    )
    ids["screenshot"] = index_service.index_document(
        DocumentRecord(
            user_id="alice",
            original_filename="screenshot-chat.png",
            mime_type="image/png",
            size_bytes=300 * KB,
            document_category="screenshot",
            created_at=utc(2023, 5, 1, 18, 0),
            has_meaningful_text=True,
            raw_text="chat with John Smith about vacation plans",
        )
    )
    ids["bob_beach"] = index_service.index_document(
        DocumentRecord(
            user_id="bob",
            original_filename="bob-beach.jpg",
            mime_type="image/jpeg",
            size_bytes=3 * MB,
            document_category="photo",
            created_at=utc(2024, 7, 2, 10, 0),
            has_meaningful_text=False,
            tags=["holiday", "tax"],
        )
    )
    return ids
