"""Document and folder records loaded into the search store."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FolderRecord(BaseModel):
    """Folder owned by a user; `path` is absolute within the user's tree."""

    id: Optional[str] = None
    user_id: str
    name: str
    path: str = Field(..., min_length=1)
    parent_id: Optional[str] = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("Folder path must start with /")
        if ".." in value:
            raise ValueError("Folder path must not contain '..'")
        return value.rstrip("/") or "/"


class DocumentRecord(BaseModel):
    """
    A document as produced by the upload and enrichment pipelines.

    `raw_text`, `companies`, `llm_summary` and `llm_metadata` are filled in by
    OCR/LLM enrichment; everything else comes from the upload.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "user_id": "alice",
                "original_filename": "apple-statement.pdf",
                "mime_type": "application/pdf",
                "size_bytes": 184320,
                "document_category": "stock_overview",
                "has_meaningful_text": True,
                "raw_text": "Apple Inc. quarterly stock overview ...",
                "companies": ["Apple"],
                "tags": ["tax", "important"],
            }
        }
    )

    id: Optional[str] = None
    user_id: str
    folder_id: Optional[str] = None
    original_filename: str = Field(..., min_length=1, max_length=255)
    mime_type: str = "application/octet-stream"
    size_bytes: int = Field(0, ge=0)
    document_category: Optional[str] = None
    extracted_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    has_meaningful_text: bool = False
    raw_text: Optional[str] = None
    companies: List[str] = Field(default_factory=list)
    llm_summary: Optional[str] = None
    llm_metadata: Optional[Dict[str, Any]] = None
    thumbnail_path: Optional[str] = None
    thumbnail_blurhash: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


__all__ = ["FolderRecord", "DocumentRecord"]
