"""
Database base models and utilities.

This module re-exports the declarative base and provides the column types
shared by the scheduling tables.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, TIMESTAMP
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator

from core.database import Base  # type: ignore[reportUnusedImport]
from utils.datetime_utils import ensure_utc


class UTCDateTime(TypeDecorator[datetime]):
    """
    Timezone-aware timestamp stored and returned in UTC.

    SQLite drops tzinfo on the way out; values read back are re-tagged as UTC
    so comparisons with aware datetimes keep working on every backend.
    """

    impl = TIMESTAMP(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        return ensure_utc(value)

    def process_result_value(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        return ensure_utc(value)


# Raw extension trees: JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")
