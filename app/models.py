"""SQLAlchemy ORM models for the paste metadata store.

Data Model Layout
=================
::
    pastes table
    ├─ hash (VARCHAR(64) PRIMARY KEY)
    ├─ created_at (TIMESTAMPTZ NOT NULL)
    └─ expires_at (TIMESTAMPTZ NOT NULL, INDEXED)

How to Use
===========
**Step 1 — Import**::
    from app.models import Paste

**Step 2 — Insert metadata**::
    session.add(Paste(hash="abc123", created_at=now, expires_at=now + ttl))
    await session.commit()

**Step 3 — Find expired rows**::
    result = await session.execute(select(Paste.hash).where(Paste.expires_at <= now))

Key Behaviours
===============
- A paste exists only while its row exists; content lives in blob storage.
- expires_at is indexed for the daily expiry sweep.
- Timestamps are written in UTC by the service, never by the database.

Classes:
    Paste:  Metadata row of a stored paste.
"""

import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

__all__ = ["Paste"]


class Paste(Base):
    __tablename__ = "pastes"

    hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Paste(hash='{self.hash}', expires_at={self.expires_at})>"
