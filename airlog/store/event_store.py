"""AIRLOG — Event Store Gateway.

The only writer of RawEvent rows and of a Connection's runtime status
(``last_polled_at``, ``last_status``, ``last_error``). A poll cycle's events
and its status update go into one transaction, serialized per connection so
the scheduled worker and the test service never interleave.
"""

import hashlib
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from airlog.core.logging import get_logger
from airlog.models.normalized_models import FetchResult, NormalizedRecord
from airlog.models.raw_models import RawEvent
from airlog.models.station_models import (
    Connection,
    ConnectionStatus,
    PayloadMapping,
)

logger = get_logger("store.events")


@dataclass(frozen=True)
class MappingSnapshot:
    """Detached copy of a PayloadMapping's paths."""

    artist_path: Optional[str] = None
    title_path: Optional[str] = None
    album_path: Optional[str] = None
    reported_at_path: Optional[str] = None
    duration_path: Optional[str] = None
    list_path: Optional[str] = None

    @classmethod
    def from_model(cls, mapping: PayloadMapping) -> "MappingSnapshot":
        return cls(
            artist_path=mapping.artist_path,
            title_path=mapping.title_path,
            album_path=mapping.album_path,
            reported_at_path=mapping.reported_at_path,
            duration_path=mapping.duration_path,
            list_path=mapping.list_path,
        )


@dataclass(frozen=True)
class ConnectionSnapshot:
    """Configuration of a connection as read at the start of a tick."""

    connection_id: uuid.UUID
    station_id: uuid.UUID
    name: str
    connection_type: str
    url: str
    poll_interval_seconds: int
    enabled: bool
    headers: Dict[str, str] = field(default_factory=dict)
    mapping: Optional[MappingSnapshot] = None


@dataclass(frozen=True)
class ScheduleEntry:
    """What the scheduler needs to know about a connection."""

    connection_id: uuid.UUID
    enabled: bool
    poll_interval_seconds: int
    connection_type: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)


def payload_hash(station_id: uuid.UUID, connection_id: uuid.UUID, payload: str) -> str:
    hasher = hashlib.sha256()
    hasher.update(station_id.bytes)
    hasher.update(connection_id.bytes)
    hasher.update(payload.encode("utf-8"))
    return hasher.hexdigest()


class EventStore:
    """Gateway over the events table and connection runtime status."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._locks: Dict[uuid.UUID, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, connection_id: uuid.UUID) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(connection_id)
            if lock is None:
                lock = self._locks[connection_id] = threading.Lock()
            return lock

    def forget(self, connection_id: uuid.UUID) -> None:
        """Drop the write lock of a connection that is no longer scheduled."""
        with self._locks_guard:
            self._locks.pop(connection_id, None)

    # ── Reads used by the engine ──

    def load_snapshot(self, connection_id: uuid.UUID) -> Optional[ConnectionSnapshot]:
        """Current connection + mapping configuration, or None if deleted."""
        with Session(self.engine) as session:
            connection = session.get(Connection, connection_id)
            if connection is None:
                return None
            mapping = None
            if connection.payload_mapping_id is not None:
                model = session.get(PayloadMapping, connection.payload_mapping_id)
                if model is not None:
                    mapping = MappingSnapshot.from_model(model)
            return ConnectionSnapshot(
                connection_id=connection.id,
                station_id=connection.station_id,
                name=connection.name,
                connection_type=connection.connection_type,
                url=connection.url,
                poll_interval_seconds=connection.poll_interval_seconds,
                enabled=connection.enabled,
                headers=dict(connection.headers or {}),
                mapping=mapping,
            )

    def is_enabled(self, connection_id: uuid.UUID) -> bool:
        """False when the connection is disabled or no longer exists."""
        with Session(self.engine) as session:
            connection = session.get(Connection, connection_id)
            return bool(connection and connection.enabled)

    def list_schedule_entries(self) -> List[ScheduleEntry]:
        with Session(self.engine) as session:
            connections = session.exec(select(Connection)).all()
            return [
                ScheduleEntry(
                    connection_id=c.id,
                    enabled=c.enabled,
                    poll_interval_seconds=max(int(c.poll_interval_seconds), 1),
                    connection_type=c.connection_type,
                    url=c.url,
                    headers=dict(c.headers or {}),
                )
                for c in connections
            ]

    # ── Recording ──

    def record(
        self,
        connection_id: uuid.UUID,
        station_id: uuid.UUID,
        fetch: Optional[FetchResult],
        records: Sequence[NormalizedRecord],
        status: ConnectionStatus,
        error: Optional[str],
        polled_at: datetime,
    ) -> bool:
        """Write one cycle's RawEvents and status update atomically.

        One RawEvent is written per record (none when ``fetch`` is None).
        Returns False, writing nothing, if the connection no longer exists.
        """
        with self._lock_for(connection_id):
            with Session(self.engine) as session:
                connection = session.get(Connection, connection_id)
                if connection is None:
                    logger.warning(
                        "Dropping poll result for deleted connection",
                        extra={"connection_id": str(connection_id)},
                    )
                    return False

                if fetch is not None:
                    digest = payload_hash(station_id, connection_id, fetch.body)
                    for record in records:
                        session.add(
                            RawEvent(
                                station_id=station_id,
                                connection_id=connection_id,
                                observed_at=record.reported_at or polled_at,
                                reported_at=record.reported_at,
                                reported_artist=record.artist,
                                reported_title=record.title,
                                reported_album=record.album,
                                reported_duration_seconds=record.duration_seconds,
                                raw_payload=fetch.body,
                                payload_hash=digest,
                                http_status=fetch.http_status,
                                content_type=fetch.content_type,
                                created_at=polled_at,
                            )
                        )

                connection.last_polled_at = polled_at
                connection.last_status = status.value
                connection.last_error = error if status is ConnectionStatus.ERROR else None
                session.add(connection)
                try:
                    session.commit()
                except SQLAlchemyError:
                    session.rollback()
                    raise

        logger.info(
            f"Recorded poll: {status.value}, {len(records) if fetch else 0} event(s)",
            extra={
                "connection_id": str(connection_id),
                "station_id": str(station_id),
                "records": len(records) if fetch else 0,
            },
        )
        return True

    # ── Event queries ──

    @staticmethod
    def _filtered(statement, station_id, connection_id):
        if station_id is not None:
            statement = statement.where(RawEvent.station_id == station_id)
        if connection_id is not None:
            statement = statement.where(RawEvent.connection_id == connection_id)
        return statement

    def list_events(
        self,
        station_id: Optional[uuid.UUID] = None,
        connection_id: Optional[uuid.UUID] = None,
        before: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[RawEvent]:
        """Events newest first by poll time.

        ``observed_at`` can come from the source clock, so a skewed or
        future-dated ``reported_at`` must not pin an old poll to the top.
        """
        statement = self._filtered(select(RawEvent), station_id, connection_id)
        if before is not None:
            statement = statement.where(RawEvent.created_at < before)
        statement = (
            statement.order_by(RawEvent.created_at.desc(), RawEvent.observed_at.desc())  # type: ignore
            .offset(offset)
            .limit(limit)
        )
        with Session(self.engine) as session:
            return list(session.exec(statement).all())

    def get_event(self, event_id: uuid.UUID) -> Optional[RawEvent]:
        with Session(self.engine) as session:
            return session.get(RawEvent, event_id)

    def count_events(
        self,
        station_id: Optional[uuid.UUID] = None,
        connection_id: Optional[uuid.UUID] = None,
    ) -> int:
        statement = self._filtered(
            select(func.count()).select_from(RawEvent), station_id, connection_id
        )
        with Session(self.engine) as session:
            return int(session.exec(statement).one())

    def clear_events(
        self,
        station_id: Optional[uuid.UUID] = None,
        connection_id: Optional[uuid.UUID] = None,
    ) -> int:
        """Bulk-delete events, optionally scoped; returns the number removed."""
        statement = delete(RawEvent)
        if station_id is not None:
            statement = statement.where(RawEvent.station_id == station_id)
        if connection_id is not None:
            statement = statement.where(RawEvent.connection_id == connection_id)
        with Session(self.engine) as session:
            result = session.exec(statement)  # type: ignore
            session.commit()
            removed = result.rowcount or 0
        logger.info(f"Cleared {removed} event(s)")
        return removed
