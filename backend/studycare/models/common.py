"""
StudyCare Backend — Shared Column Helpers
==========================================

Column types and defaults reused by every model. Types are the generic
SQLAlchemy ones (Uuid, DateTime, JSON) so the same metadata creates the
PostgreSQL schema and the SQLite schema used by the test suite.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import mapped_column

# JSONB on PostgreSQL (indexable), plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def uuid_pk():
    """Primary key column: client-generated UUID4."""
    return mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


def created_at_column():
    return mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
