"""AIRLOG — Station, Payload Mapping & Connection Models.

A Station owns Connections; a Connection optionally references a reusable
PayloadMapping. Runtime status columns on Connection (``last_*``) are written
only by the event store gateway, never by the CRUD routes.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionType(str, Enum):
    """Feed protocols a connection can poll."""

    HTTP_JSON = "http_json"
    HTTP_XML = "http_xml"
    HTTP_TEXT = "http_text"
    WS_JSON = "ws_json"
    RSS = "rss"


class ConnectionStatus(str, Enum):
    """Outcome of the most recent poll cycle."""

    OK = "OK"
    ERROR = "ERROR"


class Station(SQLModel, table=True):
    """A radio station. Deleting it cascades to connections and events."""

    __tablename__ = "stations"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True)
    callsign: Optional[str] = Field(default=None)
    website_url: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class PayloadMapping(SQLModel, table=True):
    """Named, reusable set of extraction paths.

    Each ``*_path`` is a dotted/indexed path (``a.b[0].c``) into the parsed
    payload. When ``list_path`` is set the other paths are relative to each
    element of that array.
    """

    __tablename__ = "payload_mappings"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True)
    description: Optional[str] = Field(default=None)
    artist_path: Optional[str] = Field(default=None)
    title_path: Optional[str] = Field(default=None)
    album_path: Optional[str] = Field(default=None)
    reported_at_path: Optional[str] = Field(default=None)
    duration_path: Optional[str] = Field(default=None)
    list_path: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Connection(SQLModel, table=True):
    """A pollable external feed bound to a station."""

    __tablename__ = "now_playing_connections"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    station_id: uuid.UUID = Field(foreign_key="stations.id", index=True)
    payload_mapping_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="payload_mappings.id"
    )
    name: str
    connection_type: str = Field(description="http_json | http_xml | http_text | ws_json | rss")
    url: str
    poll_interval_seconds: int = Field(default=60, ge=1)
    headers: Dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON))
    enabled: bool = Field(default=True, index=True)

    # ── Runtime status (engine-owned) ──
    last_polled_at: Optional[datetime] = Field(default=None)
    last_status: Optional[str] = Field(default=None, description="OK | ERROR")
    last_error: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
