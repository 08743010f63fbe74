"""Pydantic schemas for request/response validation and store records.

This module defines Pydantic models for API input validation, output
serialization and the records exchanged between the paste engine and its
store adapters.

Schema Hierarchy
=================
::
    SaveRequest (Input)
    ├─ text: str (non-empty, size-limited)
    └─ ttl: int | None (TTL units, >= 1)

    SaveResponse (Output)
    ├─ status: "ok"
    └─ hash: str

    TextResponse (Output)
    ├─ status: "ok"
    └─ text: str

    HealthResponse (Output)
    ├─ status, database, cache, blob_storage: HealthStatus
    └─ sweeper: SweeperState | None

    PasteMetadata (Store record)
    ├─ hash: str
    ├─ created_at: datetime
    └─ expires_at: datetime

    BlobObject (Store record)
    ├─ hash: str
    └─ last_modified: datetime

How to Use
===========
**Step 1 — Input validation**::
    @router.post("/save")
    async def save_text(payload: SaveRequest):
        # payload is already validated
        ...

**Step 2 — Store records**::
    row = await metadata.get_by_identifier("abc123")
    if row and row.is_expired(now):
        ...

Key Behaviours
===============
- Empty text and non-positive ttl are rejected with 422 by FastAPI.
- Text above MAX_CONTENT_BYTES (UTF-8 encoded) is rejected.
- All datetime fields are timezone-aware UTC.
"""

import datetime

from pydantic import BaseModel, Field, field_validator

from app.config import get_settings
from app.enums import HealthStatus, SweeperState

__all__ = [
    "SaveRequest",
    "SaveResponse",
    "TextResponse",
    "HealthResponse",
    "PasteMetadata",
    "BlobObject",
]


class SaveRequest(BaseModel):
    text: str = Field(..., min_length=1, description="Text to store")
    ttl: int | None = Field(None, ge=1, description="Retention in TTL units; defaults to DEFAULT_TTL")

    @field_validator("text")
    @classmethod
    def validate_text_size(cls, v: str) -> str:
        limit = get_settings().MAX_CONTENT_BYTES
        if len(v.encode("utf-8")) > limit:
            raise ValueError(f"Text must not exceed {limit} bytes")
        return v


class SaveResponse(BaseModel):
    status: str = "ok"
    hash: str


class TextResponse(BaseModel):
    status: str = "ok"
    text: str


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
    blob_storage: HealthStatus
    sweeper: SweeperState | None = None


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


class PasteMetadata(BaseModel):
    """Metadata row of a paste; its presence alone makes a paste exist."""

    hash: str
    created_at: datetime.datetime
    expires_at: datetime.datetime

    model_config = {"from_attributes": True}

    @field_validator("created_at", "expires_at")
    @classmethod
    def normalize_timezone(cls, v: datetime.datetime) -> datetime.datetime:
        return _as_utc(v)

    def is_expired(self, now: datetime.datetime) -> bool:
        return self.expires_at <= now


class BlobObject(BaseModel):
    """Listing entry of the blob store, used by orphan reconciliation."""

    hash: str
    last_modified: datetime.datetime

    @field_validator("last_modified")
    @classmethod
    def normalize_timezone(cls, v: datetime.datetime) -> datetime.datetime:
        return _as_utc(v)
