"""AIRLOG — API Request / Response Models."""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from airlog.mapping.paths import PathSyntaxError, validate_path
from airlog.models.station_models import ConnectionType


# ── Stations ──


class StationCreate(BaseModel):
    """Request body for POST/PUT /stations."""

    name: str = Field(min_length=1)
    callsign: Optional[str] = None
    website_url: Optional[str] = None


# ── Payload Mappings ──


class MappingCreate(BaseModel):
    """Request body for POST/PUT /mappings."""

    name: str = Field(min_length=1)
    description: Optional[str] = None
    artist_path: Optional[str] = None
    title_path: Optional[str] = None
    album_path: Optional[str] = None
    reported_at_path: Optional[str] = None
    duration_path: Optional[str] = None
    list_path: Optional[str] = None
    """Array whose elements each yield one record; other paths are relative to it."""

    @field_validator(
        "artist_path",
        "title_path",
        "album_path",
        "reported_at_path",
        "duration_path",
        "list_path",
    )
    @classmethod
    def _check_path(cls, value: Optional[str]) -> Optional[str]:
        try:
            return validate_path(value)
        except PathSyntaxError as e:
            raise ValueError(str(e)) from e

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Recently played list",
                    "list_path": "data.tracks",
                    "artist_path": "artist.name",
                    "title_path": "title",
                    "reported_at_path": "played_at",
                }
            ]
        }
    }


# ── Connections ──


class ConnectionCreate(BaseModel):
    """Request body for POST/PUT /connections."""

    station_id: uuid.UUID
    payload_mapping_id: Optional[uuid.UUID] = None
    name: str = Field(min_length=1)
    connection_type: ConnectionType
    url: str = Field(min_length=1)
    poll_interval_seconds: int = Field(default=60, ge=1)
    headers: Dict[str, Any] = Field(default_factory=dict)
    """Sent with every request. For ws_json, ``subscribe_payload`` or
    ``serviceId`` configure the subscription frame instead."""
    enabled: bool = True


# ── Events ──


class EventSummary(BaseModel):
    """RawEvent without its payload, for list views."""

    model_config = {"from_attributes": True}

    id: uuid.UUID
    station_id: uuid.UUID
    connection_id: uuid.UUID
    observed_at: datetime
    reported_at: Optional[datetime] = None
    reported_artist: Optional[str] = None
    reported_title: Optional[str] = None
    reported_album: Optional[str] = None
    reported_duration_seconds: Optional[int] = None
    payload_hash: str = ""
    http_status: Optional[int] = None
    content_type: Optional[str] = None
    created_at: datetime


class EventListResponse(BaseModel):
    """Response for GET /events."""

    status: str = "success"
    count: int
    limit: int
    offset: int
    events: List[EventSummary]
