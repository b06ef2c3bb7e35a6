"""AIRLOG — Raw Now-Playing Events (Immutable)."""

import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import Column, Text
from sqlmodel import SQLModel, Field


class RawEvent(SQLModel, table=True):
    """One observed data point from a poll.

    Never modify this data — it's the audit trail. Rows are only removed by a
    bulk clear or by deleting the owning station/connection.
    """

    __tablename__ = "raw_now_playing_events"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    station_id: uuid.UUID = Field(foreign_key="stations.id", index=True)
    connection_id: uuid.UUID = Field(
        foreign_key="now_playing_connections.id", index=True
    )
    observed_at: datetime = Field(
        index=True, description="reported_at when parseable, else poll time"
    )
    reported_at: Optional[datetime] = Field(default=None)
    reported_artist: Optional[str] = Field(default=None)
    reported_title: Optional[str] = Field(default=None)
    reported_album: Optional[str] = Field(default=None)
    reported_duration_seconds: Optional[int] = Field(default=None)
    raw_payload: str = Field(sa_column=Column(Text, nullable=False))
    payload_hash: str = Field(default="", description="sha256 for audit, not dedup")
    http_status: Optional[int] = Field(default=None)
    content_type: Optional[str] = Field(default=None)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
        description="poll time; drives newest-first listing",
    )
