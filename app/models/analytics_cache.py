"""
Analytics cache table.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class AnalyticsCacheRecord(SQLModel, table=True):
    """
    Persisted analytics bundle for a faculty member.

    One row per faculty; a new computation replaces the row.
    """

    __tablename__ = "analytics_cache"

    id: Optional[int] = Field(default=None, primary_key=True)
    faculty_id: str = Field(index=True, unique=True, max_length=64, description="Faculty user ID")
    data_json: str = Field(description="Serialized AnalyticsBundle")
    computed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), description="When the bundle was computed"
    )
