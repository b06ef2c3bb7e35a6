"""AIRLOG — Poll Scheduler.

Keeps one PollWorker and one APScheduler interval job per connection, keyed
by connection id, and reconciles that set against the stored connections:

  created            → add worker + job (job paused when disabled)
  deleted            → remove job, discard worker (an in-flight cycle finishes)
  enabled/disabled   → resume/pause job, flip worker state
  interval edited    → reschedule job
  url/headers/type/mapping edited → nothing; the worker reads them next tick

Every timer is independent, so one slow source never delays another.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from apscheduler.events import EVENT_JOB_MAX_INSTANCES, JobSubmissionEvent
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from airlog.config import settings
from airlog.connectors.fetcher import ProtocolFetcher
from airlog.core.logging import get_logger
from airlog.poller.worker import PollWorker
from airlog.store.event_store import EventStore, ScheduleEntry

logger = get_logger("poller.scheduler")

RECONCILE_JOB_ID = "reconcile_connections"


@dataclass
class ReconcileReport:
    added: List[uuid.UUID] = field(default_factory=list)
    removed: List[uuid.UUID] = field(default_factory=list)
    paused: List[uuid.UUID] = field(default_factory=list)
    resumed: List[uuid.UUID] = field(default_factory=list)
    rescheduled: List[uuid.UUID] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any((self.added, self.removed, self.paused, self.resumed, self.rescheduled))


def _job_id(connection_id: uuid.UUID) -> str:
    return f"poll:{connection_id}"


class PollScheduler:
    """Registry of per-connection workers driven by AsyncIOScheduler."""

    def __init__(
        self,
        store: EventStore,
        fetcher: ProtocolFetcher,
        reconcile_interval_seconds: Optional[int] = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.reconcile_interval_seconds = (
            reconcile_interval_seconds or settings.reconcile_interval_seconds
        )
        self.workers: Dict[uuid.UUID, PollWorker] = {}
        self._entries: Dict[uuid.UUID, ScheduleEntry] = {}
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    # ── Lifecycle ──

    def start(self) -> None:
        """Start inside a running event loop and schedule every connection."""
        if self.running:
            return
        self._scheduler = AsyncIOScheduler(
            event_loop=asyncio.get_running_loop(), timezone=timezone.utc
        )
        self._scheduler.add_listener(self._on_max_instances, EVENT_JOB_MAX_INSTANCES)
        self._scheduler.add_job(
            self._reconcile_job,
            "interval",
            seconds=self.reconcile_interval_seconds,
            id=RECONCILE_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        report = self.reconcile()
        logger.info(
            f"Poll scheduler started with {len(self.workers)} connection(s), "
            f"{len(report.added)} added"
        )

    def shutdown(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Poll scheduler stopped")
        self._scheduler = None
        self.workers.clear()
        self._entries.clear()

    # ── Reconciliation ──

    async def _reconcile_job(self) -> None:
        try:
            self.reconcile()
        except Exception as e:
            logger.error(f"Reconciliation failed: {e}")

    def reconcile(self) -> ReconcileReport:
        """Bring workers and jobs in line with the stored connections."""
        report = ReconcileReport()
        if not self.running:
            return report

        entries = {e.connection_id: e for e in self.store.list_schedule_entries()}

        for connection_id in list(self.workers):
            if connection_id not in entries:
                self._discard(connection_id)
                report.removed.append(connection_id)

        for connection_id, entry in entries.items():
            if connection_id not in self.workers:
                self._add(entry)
                report.added.append(connection_id)
            else:
                self._update(entry, report)

        if report.changed:
            logger.info(
                f"Reconciled: +{len(report.added)} -{len(report.removed)} "
                f"paused {len(report.paused)} resumed {len(report.resumed)} "
                f"rescheduled {len(report.rescheduled)}"
            )
        return report

    def _add(self, entry: ScheduleEntry) -> None:
        worker = PollWorker(entry.connection_id, self.store, self.fetcher, enabled=entry.enabled)
        self.workers[entry.connection_id] = worker
        self._entries[entry.connection_id] = entry
        self._scheduler.add_job(
            worker.tick,
            "interval",
            seconds=entry.poll_interval_seconds,
            id=_job_id(entry.connection_id),
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
            # Enabled connections poll right away; None adds the job paused
            next_run_time=datetime.now(timezone.utc) if entry.enabled else None,
        )

    def _update(self, entry: ScheduleEntry, report: ReconcileReport) -> None:
        previous = self._entries[entry.connection_id]
        worker = self.workers[entry.connection_id]
        job_id = _job_id(entry.connection_id)

        if entry.poll_interval_seconds != previous.poll_interval_seconds:
            # Rescheduling also un-pauses, so the enabled check below must follow
            self._scheduler.reschedule_job(
                job_id, trigger="interval", seconds=entry.poll_interval_seconds
            )
            report.rescheduled.append(entry.connection_id)
            if not entry.enabled:
                self._scheduler.pause_job(job_id)

        if entry.enabled != previous.enabled:
            if entry.enabled:
                self._scheduler.modify_job(job_id, next_run_time=datetime.now(timezone.utc))
                report.resumed.append(entry.connection_id)
            else:
                self._scheduler.pause_job(job_id)
                report.paused.append(entry.connection_id)

        # The worker may have disabled itself from the database between
        # reconciles, so its flag follows the snapshot every time
        worker.set_enabled(entry.enabled)

        if (entry.url, entry.headers, entry.connection_type) != (
            previous.url,
            previous.headers,
            previous.connection_type,
        ):
            self._release(previous)

        self._entries[entry.connection_id] = entry

    def _discard(self, connection_id: uuid.UUID) -> None:
        try:
            self._scheduler.remove_job(_job_id(connection_id))
        except JobLookupError:
            pass
        self.workers.pop(connection_id, None)
        self.store.forget(connection_id)
        entry = self._entries.pop(connection_id, None)
        if entry is not None:
            self._release(entry)

    def _release(self, entry: ScheduleEntry) -> None:
        """Close any persistent socket held for the connection."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(
            self.fetcher.release(entry.connection_id)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_max_instances(self, event: JobSubmissionEvent) -> None:
        if not event.job_id.startswith("poll:"):
            return
        worker = self.workers.get(uuid.UUID(event.job_id.split(":", 1)[1]))
        if worker is not None:
            worker.note_skipped()

    # ── Introspection ──

    def worker(self, connection_id: uuid.UUID) -> Optional[PollWorker]:
        return self.workers.get(connection_id)

    def next_run_time(self, connection_id: uuid.UUID) -> Optional[datetime]:
        if not self.running:
            return None
        job = self._scheduler.get_job(_job_id(connection_id))
        return job.next_run_time if job else None

    def status(self) -> List[Dict[str, Any]]:
        return [
            {
                "connection_id": str(connection_id),
                "state": worker.state.value,
                "polls": worker.polls,
                "skipped_ticks": worker.skipped_ticks,
                "next_run_time": self.next_run_time(connection_id),
            }
            for connection_id, worker in self.workers.items()
        ]
