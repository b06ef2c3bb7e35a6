"""AIRLOG — Station / Mapping / Connection Persistence.

Plain CRUD behind the admin API. Runtime status fields on connections are
never touched here; cascades are done explicitly so they behave the same on
SQLite and PostgreSQL.
"""

import uuid
from typing import List, Optional

from sqlalchemy import delete, update
from sqlmodel import Session, select

from airlog.connectors.headers import normalize_headers_for_storage
from airlog.core.errors import InvalidReference
from airlog.core.logging import get_logger
from airlog.models.api_models import ConnectionCreate, MappingCreate, StationCreate
from airlog.models.raw_models import RawEvent
from airlog.models.station_models import (
    Connection,
    PayloadMapping,
    Station,
    utc_now,
)

logger = get_logger("store.catalog")


# ── Stations ──


def list_stations(session: Session) -> List[Station]:
    return list(session.exec(select(Station).order_by(Station.name)).all())


def create_station(session: Session, data: StationCreate) -> Station:
    station = Station(**data.model_dump())
    session.add(station)
    session.commit()
    session.refresh(station)
    return station


def update_station(
    session: Session, station_id: uuid.UUID, data: StationCreate
) -> Optional[Station]:
    station = session.get(Station, station_id)
    if station is None:
        return None
    for key, value in data.model_dump().items():
        setattr(station, key, value)
    station.updated_at = utc_now()
    session.add(station)
    session.commit()
    session.refresh(station)
    return station


def delete_station(session: Session, station_id: uuid.UUID) -> bool:
    """Delete a station with all its connections and their events."""
    station = session.get(Station, station_id)
    if station is None:
        return False
    events = session.exec(delete(RawEvent).where(RawEvent.station_id == station_id))  # type: ignore
    connections = session.exec(
        delete(Connection).where(Connection.station_id == station_id)  # type: ignore
    )
    session.delete(station)
    session.commit()
    logger.info(
        f"Deleted station with {connections.rowcount} connection(s) "
        f"and {events.rowcount} event(s)",
        extra={"station_id": str(station_id)},
    )
    return True


# ── Payload mappings ──


def list_mappings(session: Session) -> List[PayloadMapping]:
    return list(session.exec(select(PayloadMapping).order_by(PayloadMapping.name)).all())


def create_mapping(session: Session, data: MappingCreate) -> PayloadMapping:
    mapping = PayloadMapping(**data.model_dump())
    session.add(mapping)
    session.commit()
    session.refresh(mapping)
    return mapping


def update_mapping(
    session: Session, mapping_id: uuid.UUID, data: MappingCreate
) -> Optional[PayloadMapping]:
    mapping = session.get(PayloadMapping, mapping_id)
    if mapping is None:
        return None
    for key, value in data.model_dump().items():
        setattr(mapping, key, value)
    mapping.updated_at = utc_now()
    session.add(mapping)
    session.commit()
    session.refresh(mapping)
    return mapping


def delete_mapping(session: Session, mapping_id: uuid.UUID) -> bool:
    """Delete a mapping; connections using it fall back to type defaults."""
    mapping = session.get(PayloadMapping, mapping_id)
    if mapping is None:
        return False
    session.exec(
        update(Connection)  # type: ignore
        .where(Connection.payload_mapping_id == mapping_id)
        .values(payload_mapping_id=None)
    )
    session.delete(mapping)
    session.commit()
    return True


# ── Connections ──


def _check_references(session: Session, data: ConnectionCreate) -> None:
    if session.get(Station, data.station_id) is None:
        raise InvalidReference(f"Station {data.station_id} does not exist")
    if (
        data.payload_mapping_id is not None
        and session.get(PayloadMapping, data.payload_mapping_id) is None
    ):
        raise InvalidReference(f"Payload mapping {data.payload_mapping_id} does not exist")


def _apply(connection: Connection, data: ConnectionCreate) -> None:
    connection.station_id = data.station_id
    connection.payload_mapping_id = data.payload_mapping_id
    connection.name = data.name
    connection.connection_type = data.connection_type.value
    connection.url = data.url
    connection.poll_interval_seconds = data.poll_interval_seconds
    connection.headers = normalize_headers_for_storage(
        data.connection_type.value, data.headers
    )
    connection.enabled = data.enabled


def list_connections(
    session: Session, station_id: Optional[uuid.UUID] = None
) -> List[Connection]:
    statement = select(Connection).order_by(Connection.name)
    if station_id is not None:
        statement = statement.where(Connection.station_id == station_id)
    return list(session.exec(statement).all())


def create_connection(session: Session, data: ConnectionCreate) -> Connection:
    _check_references(session, data)
    connection = Connection(
        station_id=data.station_id,
        name=data.name,
        connection_type=data.connection_type.value,
        url=data.url,
    )
    _apply(connection, data)
    session.add(connection)
    session.commit()
    session.refresh(connection)
    return connection


def update_connection(
    session: Session, connection_id: uuid.UUID, data: ConnectionCreate
) -> Optional[Connection]:
    connection = session.get(Connection, connection_id)
    if connection is None:
        return None
    _check_references(session, data)
    _apply(connection, data)
    connection.updated_at = utc_now()
    session.add(connection)
    session.commit()
    session.refresh(connection)
    return connection


def set_connection_enabled(
    session: Session, connection_id: uuid.UUID, enabled: bool
) -> Optional[Connection]:
    connection = session.get(Connection, connection_id)
    if connection is None:
        return None
    connection.enabled = enabled
    connection.updated_at = utc_now()
    session.add(connection)
    session.commit()
    session.refresh(connection)
    return connection


def delete_connection(session: Session, connection_id: uuid.UUID) -> bool:
    """Delete a connection and its events."""
    connection = session.get(Connection, connection_id)
    if connection is None:
        return False
    session.exec(delete(RawEvent).where(RawEvent.connection_id == connection_id))  # type: ignore
    session.delete(connection)
    session.commit()
    return True
