from __future__ import annotations

import asyncio
import uuid

import pytest
from sqlmodel import Session, select

from airlog.core.errors import ConnectionNotFound, TransportError
from airlog.models.raw_models import RawEvent
from airlog.models.station_models import Connection
from airlog.poller.tester import ConnectionTester
from conftest import FakeFetcher, add_connection, json_result


def test_test_poll_returns_raw_and_normalized_without_recording(engine, store, connection) -> None:
    tester = ConnectionTester(
        store, FakeFetcher([json_result('{"artist": "A", "title": "T"}')]), updates_status=False
    )

    result = asyncio.run(tester.run(connection.id))

    assert result.status == "OK"
    assert result.raw_payload == '{"artist": "A", "title": "T"}'
    assert result.http_status == 200
    assert [(r.artist, r.title) for r in result.records] == [("A", "T")]
    assert result.recorded is False
    with Session(engine) as session:
        assert session.exec(select(RawEvent)).all() == []
        assert session.get(Connection, connection.id).last_status is None


def test_test_poll_can_record_through_the_store(engine, store, connection) -> None:
    tester = ConnectionTester(store, FakeFetcher([json_result('{"title": "T"}')]))

    result = asyncio.run(tester.run(connection.id, record=True))

    assert result.recorded is True
    with Session(engine) as session:
        assert len(session.exec(select(RawEvent)).all()) == 1
        assert session.get(Connection, connection.id).last_status == "OK"


def test_test_poll_works_on_disabled_connections(engine, store, station) -> None:
    conn = add_connection(engine, station.id, enabled=False)
    tester = ConnectionTester(store, FakeFetcher([TransportError("dns failure")]))

    result = asyncio.run(tester.run(conn.id))

    assert result.status == "ERROR"
    assert result.error_kind == "TransportError"
    assert result.error == "TransportError: dns failure"
    assert result.raw_payload is None


def test_test_poll_unknown_connection(store) -> None:
    tester = ConnectionTester(store, FakeFetcher([json_result("{}")]))
    with pytest.raises(ConnectionNotFound):
        asyncio.run(tester.run(uuid.uuid4()))
