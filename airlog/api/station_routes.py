"""AIRLOG — Station API Routes."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from airlog.database import get_session
from airlog.models.api_models import StationCreate
from airlog.models.station_models import Station
from airlog.poller.jobs import get_poll_scheduler
from airlog.poller.scheduler import PollScheduler
from airlog.store import catalog
from airlog.core.logging import get_logger

logger = get_logger("api.stations")

router = APIRouter(prefix="/stations", tags=["Stations"])


@router.get("")
async def list_stations(session: Session = Depends(get_session)):
    stations = catalog.list_stations(session)
    return {"status": "success", "count": len(stations), "stations": stations}


@router.post("", status_code=201)
async def create_station(
    request: StationCreate, session: Session = Depends(get_session)
):
    station = catalog.create_station(session, request)
    logger.info(f"Created station '{station.name}'", extra={"station_id": str(station.id)})
    return station


@router.get("/{station_id}")
async def get_station(station_id: uuid.UUID, session: Session = Depends(get_session)):
    station = session.get(Station, station_id)
    if station is None:
        raise HTTPException(status_code=404, detail="Station not found")
    return station


@router.put("/{station_id}")
async def update_station(
    station_id: uuid.UUID,
    request: StationCreate,
    session: Session = Depends(get_session),
):
    station = catalog.update_station(session, station_id, request)
    if station is None:
        raise HTTPException(status_code=404, detail="Station not found")
    return station


@router.delete("/{station_id}")
async def delete_station(
    station_id: uuid.UUID,
    session: Session = Depends(get_session),
    scheduler: PollScheduler = Depends(get_poll_scheduler),
):
    """Delete a station together with its connections and their events."""
    if not catalog.delete_station(session, station_id):
        raise HTTPException(status_code=404, detail="Station not found")
    scheduler.reconcile()
    return {"status": "success", "deleted": str(station_id)}
