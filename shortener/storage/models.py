"""
Data models for stored URL mappings.
"""

from pydantic import BaseModel, Field
from typing import Optional


class URLRecord(BaseModel):
    """
    One short ID -> long URL mapping.

    Records are never physically removed: deleting a short link flips
    `deleted` (a tombstone), so the ID and the URL stay reserved.
    """

    short_id: str = Field(..., description="Short identifier, unique across the store")
    original_url: str = Field(..., description="Long URL, unique across the store")
    owner_id: str = Field("", description="Opaque identity of the creator")
    deleted: bool = Field(False, description="Soft-delete marker")


class URLLogEntry(BaseModel):
    """
    One line of the append-only storage file.

    Written as compact JSON with defaults left out, so a plain save is
    {"short_url": ..., "original_url": ..., "user_id": ...} and only a
    delete adds "is_deleted": true.
    """

    short_url: str
    original_url: str
    user_id: Optional[str] = None
    is_deleted: bool = False

    @classmethod
    def from_record(cls, record: URLRecord) -> "URLLogEntry":
        return cls(
            short_url=record.short_id,
            original_url=record.original_url,
            user_id=record.owner_id or None,
            is_deleted=record.deleted,
        )

    def to_record(self) -> URLRecord:
        return URLRecord(
            short_id=self.short_url,
            original_url=self.original_url,
            owner_id=self.user_id or "",
            deleted=self.is_deleted,
        )
