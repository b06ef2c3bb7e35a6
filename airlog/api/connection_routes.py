"""AIRLOG — Connection API Routes.

Every write here is followed by a reconcile so the scheduler picks up new,
removed, paused or rescheduled connections without waiting for its own
periodic pass.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from airlog.core.errors import ConnectionNotFound, InvalidReference
from airlog.core.logging import get_logger
from airlog.database import get_session
from airlog.models.api_models import ConnectionCreate
from airlog.models.station_models import Connection
from airlog.poller.jobs import get_connection_tester, get_poll_scheduler
from airlog.poller.scheduler import PollScheduler
from airlog.poller.tester import ConnectionTester, ConnectionTestResult
from airlog.store import catalog

logger = get_logger("api.connections")

router = APIRouter(prefix="/connections", tags=["Connections"])


def _get_or_404(session: Session, connection_id: uuid.UUID) -> Connection:
    connection = session.get(Connection, connection_id)
    if connection is None:
        raise HTTPException(status_code=404, detail="Connection not found")
    return connection


@router.get("")
async def list_connections(
    station_id: Optional[uuid.UUID] = Query(None),
    session: Session = Depends(get_session),
):
    connections = catalog.list_connections(session, station_id=station_id)
    return {"status": "success", "count": len(connections), "connections": connections}


@router.post("", status_code=201)
async def create_connection(
    request: ConnectionCreate,
    session: Session = Depends(get_session),
    scheduler: PollScheduler = Depends(get_poll_scheduler),
):
    try:
        connection = catalog.create_connection(session, request)
    except InvalidReference as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(
        f"Created connection '{connection.name}'",
        extra={
            "connection_id": str(connection.id),
            "station_id": str(connection.station_id),
            "connection_type": connection.connection_type,
        },
    )
    scheduler.reconcile()
    return connection


@router.get("/{connection_id}")
async def get_connection(
    connection_id: uuid.UUID,
    session: Session = Depends(get_session),
    scheduler: PollScheduler = Depends(get_poll_scheduler),
):
    """Connection with its stored status and live worker state, if scheduled."""
    connection = _get_or_404(session, connection_id)
    worker = scheduler.worker(connection_id)
    return {
        "connection": connection,
        "worker_state": worker.state.value if worker else None,
        "next_run_time": scheduler.next_run_time(connection_id),
    }


@router.put("/{connection_id}")
async def update_connection(
    connection_id: uuid.UUID,
    request: ConnectionCreate,
    session: Session = Depends(get_session),
    scheduler: PollScheduler = Depends(get_poll_scheduler),
):
    try:
        connection = catalog.update_connection(session, connection_id, request)
    except InvalidReference as e:
        raise HTTPException(status_code=400, detail=str(e))
    if connection is None:
        raise HTTPException(status_code=404, detail="Connection not found")
    scheduler.reconcile()
    return connection


@router.delete("/{connection_id}")
async def delete_connection(
    connection_id: uuid.UUID,
    session: Session = Depends(get_session),
    scheduler: PollScheduler = Depends(get_poll_scheduler),
):
    """Delete a connection and its events. An in-flight poll is left to finish."""
    if not catalog.delete_connection(session, connection_id):
        raise HTTPException(status_code=404, detail="Connection not found")
    scheduler.reconcile()
    return {"status": "success", "deleted": str(connection_id)}


@router.post("/{connection_id}/enable")
async def enable_connection(
    connection_id: uuid.UUID,
    session: Session = Depends(get_session),
    scheduler: PollScheduler = Depends(get_poll_scheduler),
):
    connection = catalog.set_connection_enabled(session, connection_id, True)
    if connection is None:
        raise HTTPException(status_code=404, detail="Connection not found")
    scheduler.reconcile()
    return connection


@router.post("/{connection_id}/disable")
async def disable_connection(
    connection_id: uuid.UUID,
    session: Session = Depends(get_session),
    scheduler: PollScheduler = Depends(get_poll_scheduler),
):
    connection = catalog.set_connection_enabled(session, connection_id, False)
    if connection is None:
        raise HTTPException(status_code=404, detail="Connection not found")
    scheduler.reconcile()
    return connection


@router.post("/{connection_id}/test", response_model=ConnectionTestResult)
async def test_connection(
    connection_id: uuid.UUID,
    record: Optional[bool] = Query(
        None, description="Also store the result; defaults to TEST_UPDATES_STATUS"
    ),
    tester: ConnectionTester = Depends(get_connection_tester),
):
    """Run one fetch + evaluate cycle now and return the raw and normalized result."""
    try:
        return await tester.run(connection_id, record=record)
    except ConnectionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
