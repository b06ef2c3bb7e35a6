from __future__ import annotations

import asyncio

from sqlmodel import Session, select

from airlog.core.errors import TransportError
from airlog.models.raw_models import RawEvent
from airlog.models.station_models import Connection
from airlog.poller.worker import PollWorker, WorkerState
from conftest import FakeFetcher, add_connection, add_mapping, json_result


def _events(engine) -> list:
    with Session(engine) as session:
        return list(session.exec(select(RawEvent)).all())


def _connection(engine, connection_id) -> Connection:
    with Session(engine) as session:
        return session.get(Connection, connection_id)


def test_successful_poll_records_one_event_per_record(engine, store, station) -> None:
    mapping = add_mapping(engine, list_path="tracks", artist_path="a", title_path="t")
    conn = add_connection(engine, station.id, payload_mapping_id=mapping.id)
    body = '{"tracks": [{"a": "A", "t": "One"}, {"a": "B", "t": "Two"}]}'
    worker = PollWorker(conn.id, store, FakeFetcher([json_result(body)]))

    outcome = asyncio.run(worker.tick())

    assert outcome.status.value == "OK"
    events = _events(engine)
    assert sorted(e.reported_title for e in events) == ["One", "Two"]
    assert all(e.raw_payload == body for e in events)
    assert all(e.http_status == 200 for e in events)
    assert len({e.payload_hash for e in events}) == 1
    stored = _connection(engine, conn.id)
    assert stored.last_status == "OK"
    assert stored.last_error is None
    assert worker.state is WorkerState.IDLE
    assert worker.polls == 1


def test_transport_failure_records_no_events(engine, store, connection) -> None:
    fetcher = FakeFetcher([TransportError("connect refused")])
    worker = PollWorker(connection.id, store, fetcher)

    outcome = asyncio.run(worker.tick())

    assert outcome.status.value == "ERROR"
    assert _events(engine) == []
    stored = _connection(engine, connection.id)
    assert stored.last_status == "ERROR"
    assert stored.last_error == "TransportError: connect refused"
    assert stored.last_polled_at is not None


def test_malformed_body_keeps_payload_with_parse_error(engine, store, connection) -> None:
    worker = PollWorker(connection.id, store, FakeFetcher([json_result("{oops")]))

    asyncio.run(worker.tick())

    (event,) = _events(engine)
    assert event.raw_payload == "{oops"
    assert event.reported_title is None
    stored = _connection(engine, connection.id)
    assert stored.last_status == "ERROR"
    assert stored.last_error.startswith("ParseError: ")


def test_non_2xx_keeps_payload_with_protocol_error(engine, store, connection) -> None:
    worker = PollWorker(connection.id, store, FakeFetcher([json_result("gone", status=404)]))

    asyncio.run(worker.tick())

    (event,) = _events(engine)
    assert event.http_status == 404
    stored = _connection(engine, connection.id)
    assert stored.last_error.startswith("ProtocolError: HTTP 404")


def test_ticks_never_overlap_for_a_slow_source(engine, store, connection) -> None:
    fetcher = FakeFetcher([json_result('{"title": "T"}')], delay=0.2)
    worker = PollWorker(connection.id, store, fetcher)

    async def run():
        return await asyncio.gather(worker.tick(), worker.tick(), worker.tick())

    outcomes = asyncio.run(run())

    assert fetcher.max_active == 1
    assert len(fetcher.calls) == 1
    assert sum(o is not None for o in outcomes) == 1
    assert worker.skipped_ticks == 2
    assert len(_events(engine)) == 1


def test_disable_during_flight_still_records_then_stops(engine, store, connection) -> None:
    fetcher = FakeFetcher([json_result('{"title": "T"}')], delay=0.1)
    worker = PollWorker(connection.id, store, fetcher)

    async def run():
        task = asyncio.create_task(worker.tick())
        await asyncio.sleep(0.02)
        assert worker.in_flight
        with Session(engine) as session:
            row = session.get(Connection, connection.id)
            row.enabled = False
            session.add(row)
            session.commit()
        worker.set_enabled(False)
        outcome = await task
        follow_up = await worker.tick()
        return outcome, follow_up

    outcome, follow_up = asyncio.run(run())

    assert outcome is not None
    assert follow_up is None
    assert worker.state is WorkerState.DISABLED
    assert len(_events(engine)) == 1
    assert len(fetcher.calls) == 1


def test_deleted_connection_is_not_polled(engine, store, connection) -> None:
    with Session(engine) as session:
        session.delete(session.get(Connection, connection.id))
        session.commit()
    fetcher = FakeFetcher([json_result("{}")])
    worker = PollWorker(connection.id, store, fetcher)

    assert asyncio.run(worker.tick()) is None
    assert fetcher.calls == []


def test_fetch_timeout_is_derived_from_interval(engine, store, station) -> None:
    conn = add_connection(engine, station.id, poll_interval_seconds=5)
    fetcher = FakeFetcher([json_result("{}")])

    asyncio.run(PollWorker(conn.id, store, fetcher).tick())

    assert fetcher.calls[0]["timeout"] < 5
