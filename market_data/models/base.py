"""
SQLAlchemy 2.0 async DeclarativeBase for the market-data pipeline.

All models inherit from this Base. Column types stay portable so the same
metadata builds on PostgreSQL (production) and SQLite (tests).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# JSONB on PostgreSQL, plain JSON everywhere else
JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all market-data database models."""
    pass
