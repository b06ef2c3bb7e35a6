from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel

from airlog.core.errors import IngestError
from airlog.database import create_db_engine
from airlog.models.normalized_models import FetchResult
from airlog.models.raw_models import RawEvent  # noqa: F401
from airlog.models.station_models import Connection, PayloadMapping, Station
from airlog.store.event_store import EventStore


class FakeFetcher:
    """Stands in for ProtocolFetcher; replays queued results or errors."""

    def __init__(
        self,
        results: Optional[List[object]] = None,
        delay: float = 0.0,
    ) -> None:
        self.results = list(results or [])
        self.delay = delay
        self.calls: List[Dict[str, object]] = []
        self.active = 0
        self.max_active = 0
        self.released: List[object] = []

    async def fetch(
        self,
        url: str,
        headers: Dict[str, str],
        connection_type: str,
        timeout: float,
        connection_id=None,
    ) -> FetchResult:
        self.calls.append(
            {
                "url": url,
                "headers": headers,
                "type": connection_type,
                "timeout": timeout,
                "connection_id": connection_id,
            }
        )
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
            if isinstance(result, IngestError):
                raise result
            return result
        finally:
            self.active -= 1

    async def release(self, connection_id) -> None:
        self.released.append(connection_id)

    async def close(self) -> None:
        return None


def json_result(body: str, status: int = 200) -> FetchResult:
    return FetchResult(
        body=body,
        http_status=status,
        content_type="application/json",
        fetched_at=datetime.now(timezone.utc),
    )


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine: Engine) -> EventStore:
    return EventStore(engine)


@pytest.fixture
def station(engine: Engine) -> Station:
    with Session(engine) as session:
        station = Station(name="Radio Test", callsign="RTST")
        session.add(station)
        session.commit()
        session.refresh(station)
        return station


def add_connection(engine: Engine, station_id, **overrides) -> Connection:
    values = {
        "station_id": station_id,
        "name": "now playing",
        "connection_type": "http_json",
        "url": "https://radio.example/now.json",
        "poll_interval_seconds": 10,
        "headers": {},
        "enabled": True,
    }
    values.update(overrides)
    with Session(engine) as session:
        connection = Connection(**values)
        session.add(connection)
        session.commit()
        session.refresh(connection)
        return connection


def add_mapping(engine: Engine, **paths) -> PayloadMapping:
    with Session(engine) as session:
        mapping = PayloadMapping(name=paths.pop("name", "mapping"), **paths)
        session.add(mapping)
        session.commit()
        session.refresh(mapping)
        return mapping


@pytest.fixture
def connection(engine: Engine, station: Station) -> Connection:
    return add_connection(engine, station.id)
