from __future__ import annotations

import asyncio
from datetime import timedelta

from sqlmodel import Session

from airlog.models.station_models import Connection
from airlog.poller.scheduler import PollScheduler, _job_id
from airlog.poller.worker import WorkerState
from airlog.store import catalog
from conftest import FakeFetcher, add_connection, json_result


def _update(engine, connection_id, **changes) -> None:
    with Session(engine) as session:
        row = session.get(Connection, connection_id)
        for key, value in changes.items():
            setattr(row, key, value)
        session.add(row)
        session.commit()


def _delete(engine, connection_id) -> None:
    with Session(engine) as session:
        catalog.delete_connection(session, connection_id)


def test_reconcile_is_a_no_op_before_start(store) -> None:
    scheduler = PollScheduler(store, FakeFetcher([json_result("{}")]))
    assert not scheduler.reconcile().changed
    assert scheduler.status() == []


def test_reconcile_tracks_connection_lifecycle(engine, store, station) -> None:
    enabled = add_connection(engine, station.id, name="live", poll_interval_seconds=30)
    paused = add_connection(engine, station.id, name="paused", enabled=False)
    fetcher = FakeFetcher([json_result('{"title": "T"}')])
    scheduler = PollScheduler(store, fetcher, reconcile_interval_seconds=3600)

    async def run():
        scheduler.start()
        try:
            jobs = scheduler._scheduler
            assert set(scheduler.workers) == {enabled.id, paused.id}
            assert jobs.get_job(_job_id(enabled.id)).next_run_time is not None
            assert jobs.get_job(_job_id(paused.id)).next_run_time is None
            assert scheduler.worker(paused.id).state is WorkerState.DISABLED

            # Let the enabled connection poll once
            await asyncio.sleep(0.3)
            assert scheduler.worker(enabled.id).polls == 1

            _update(engine, enabled.id, poll_interval_seconds=45)
            report = scheduler.reconcile()
            assert report.rescheduled == [enabled.id]
            assert jobs.get_job(_job_id(enabled.id)).trigger.interval == timedelta(seconds=45)

            _update(engine, enabled.id, enabled=False)
            _update(engine, paused.id, enabled=True)
            report = scheduler.reconcile()
            assert report.paused == [enabled.id]
            assert report.resumed == [paused.id]
            assert jobs.get_job(_job_id(enabled.id)).next_run_time is None
            assert jobs.get_job(_job_id(paused.id)).next_run_time is not None
            assert scheduler.worker(enabled.id).state is WorkerState.DISABLED

            _delete(engine, enabled.id)
            added = add_connection(engine, station.id, name="new")
            report = scheduler.reconcile()
            assert report.removed == [enabled.id]
            assert report.added == [added.id]
            assert jobs.get_job(_job_id(enabled.id)) is None
            assert scheduler.worker(enabled.id) is None
            assert enabled.id not in store._locks

            await asyncio.sleep(0)
            assert not scheduler.reconcile().changed
        finally:
            scheduler.shutdown()

    asyncio.run(run())
    assert not scheduler.running


def test_rescheduling_a_disabled_connection_keeps_it_paused(engine, store, station) -> None:
    conn = add_connection(engine, station.id, enabled=False, poll_interval_seconds=30)
    scheduler = PollScheduler(store, FakeFetcher([json_result("{}")]), reconcile_interval_seconds=3600)

    async def run():
        scheduler.start()
        try:
            _update(engine, conn.id, poll_interval_seconds=60)
            scheduler.reconcile()
            return scheduler.next_run_time(conn.id)
        finally:
            scheduler.shutdown()

    assert asyncio.run(run()) is None


def test_endpoint_change_releases_persistent_socket(engine, store, station) -> None:
    conn = add_connection(
        engine, station.id, connection_type="ws_json", url="wss://a.example/live", enabled=False
    )
    fetcher = FakeFetcher([json_result("{}")])
    scheduler = PollScheduler(store, fetcher, reconcile_interval_seconds=3600)

    async def run():
        scheduler.start()
        try:
            _update(engine, conn.id, url="wss://b.example/live")
            scheduler.reconcile()
            await asyncio.sleep(0)
        finally:
            scheduler.shutdown()

    asyncio.run(run())
    assert fetcher.released == [conn.id]


def test_status_lists_workers(engine, store, station) -> None:
    conn = add_connection(engine, station.id, enabled=False)
    scheduler = PollScheduler(store, FakeFetcher([json_result("{}")]), reconcile_interval_seconds=3600)

    async def run():
        scheduler.start()
        try:
            return scheduler.status()
        finally:
            scheduler.shutdown()

    (entry,) = asyncio.run(run())
    assert entry["connection_id"] == str(conn.id)
    assert entry["state"] == "disabled"
    assert entry["skipped_ticks"] == 0


def test_worker_disabled_between_reconciles_resumes_when_reenabled(
    engine, store, station
) -> None:
    conn = add_connection(engine, station.id, poll_interval_seconds=30)
    fetcher = FakeFetcher([json_result('{"title": "T"}')])
    scheduler = PollScheduler(store, fetcher, reconcile_interval_seconds=3600)

    async def run():
        scheduler.start()
        try:
            await asyncio.sleep(0.3)
            worker = scheduler.worker(conn.id)
            assert len(fetcher.calls) == 1

            # Disabled and re-enabled without a reconcile seeing the change
            _update(engine, conn.id, enabled=False)
            assert await worker.tick() is None
            assert worker.state is WorkerState.DISABLED
            _update(engine, conn.id, enabled=True)

            assert not scheduler.reconcile().changed
            assert worker.state is WorkerState.IDLE
            assert await worker.tick() is not None
        finally:
            scheduler.shutdown()

    asyncio.run(run())
    assert len(fetcher.calls) == 2


def test_scheduled_poll_passes_connection_id_to_fetcher(engine, store, station) -> None:
    conn = add_connection(engine, station.id, poll_interval_seconds=30)
    fetcher = FakeFetcher([json_result("{}")])
    scheduler = PollScheduler(store, fetcher, reconcile_interval_seconds=3600)

    async def run():
        scheduler.start()
        try:
            await asyncio.sleep(0.3)
        finally:
            scheduler.shutdown()

    asyncio.run(run())
    assert fetcher.calls[0]["connection_id"] == conn.id
