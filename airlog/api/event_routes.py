"""AIRLOG — Raw Event API Routes."""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from airlog.config import settings
from airlog.core.logging import get_logger
from airlog.models.api_models import EventListResponse, EventSummary
from airlog.poller.jobs import get_event_store
from airlog.store.event_store import EventStore

logger = get_logger("api.events")

router = APIRouter(prefix="/events", tags=["Events"])


@router.get("", response_model=EventListResponse)
async def list_events(
    station_id: Optional[uuid.UUID] = Query(None),
    connection_id: Optional[uuid.UUID] = Query(None),
    before: Optional[datetime] = Query(None, description="Only events recorded before this time"),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    store: EventStore = Depends(get_event_store),
):
    """Raw events newest first, without payload bodies."""
    limit = min(limit or settings.events_default_limit, settings.events_max_limit)
    events = store.list_events(
        station_id=station_id,
        connection_id=connection_id,
        before=before,
        limit=limit,
        offset=offset,
    )
    return EventListResponse(
        count=len(events),
        limit=limit,
        offset=offset,
        events=[EventSummary.model_validate(e) for e in events],
    )


@router.get("/count")
async def count_events(
    station_id: Optional[uuid.UUID] = Query(None),
    connection_id: Optional[uuid.UUID] = Query(None),
    store: EventStore = Depends(get_event_store),
):
    return {"count": store.count_events(station_id=station_id, connection_id=connection_id)}


@router.get("/{event_id}")
async def get_event(event_id: uuid.UUID, store: EventStore = Depends(get_event_store)):
    """Single event including its verbatim payload."""
    event = store.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.delete("")
async def clear_events(
    station_id: Optional[uuid.UUID] = Query(None),
    connection_id: Optional[uuid.UUID] = Query(None),
    store: EventStore = Depends(get_event_store),
):
    """Bulk-delete events. Without filters this clears the whole log."""
    removed = store.clear_events(station_id=station_id, connection_id=connection_id)
    logger.warning(
        f"Cleared {removed} event(s)",
        extra={
            "station_id": str(station_id) if station_id else None,
            "connection_id": str(connection_id) if connection_id else None,
        },
    )
    return {"status": "success", "deleted": removed}
