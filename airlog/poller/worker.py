"""AIRLOG — Poll Worker.

Owns one connection's poll lifecycle:

    IDLE → FETCHING → EVALUATING → RECORDING → IDLE
    DISABLED while the connection's ``enabled`` flag is false

A tick that arrives while a cycle is in flight is skipped, so a slow source
lowers its own effective rate instead of piling up concurrent requests.
"""

import uuid
from enum import Enum
from typing import Optional

from airlog.connectors.fetcher import ProtocolFetcher
from airlog.core.logging import get_logger
from airlog.poller.cycle import PollOutcome, record_outcome, run_cycle
from airlog.store.event_store import EventStore

logger = get_logger("poller.worker")


class WorkerState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    EVALUATING = "evaluating"
    RECORDING = "recording"
    DISABLED = "disabled"


IN_FLIGHT = {WorkerState.FETCHING, WorkerState.EVALUATING, WorkerState.RECORDING}


class PollWorker:
    """Timer target for a single connection."""

    def __init__(
        self,
        connection_id: uuid.UUID,
        store: EventStore,
        fetcher: ProtocolFetcher,
        enabled: bool = True,
    ):
        self.connection_id = connection_id
        self.store = store
        self.fetcher = fetcher
        self.state = WorkerState.IDLE if enabled else WorkerState.DISABLED
        self.polls = 0
        self.skipped_ticks = 0
        self.last_outcome: Optional[PollOutcome] = None

    @property
    def in_flight(self) -> bool:
        return self.state in IN_FLIGHT

    def set_enabled(self, enabled: bool) -> None:
        """Flip between IDLE and DISABLED. An in-flight cycle is left alone;
        it re-reads ``enabled`` when it finishes."""
        if self.in_flight:
            return
        self.state = WorkerState.IDLE if enabled else WorkerState.DISABLED

    def note_skipped(self) -> None:
        self.skipped_ticks += 1
        logger.info(
            f"Tick skipped, previous poll still {self.state.value}",
            extra={"connection_id": str(self.connection_id)},
        )

    def _on_stage(self, stage: str) -> None:
        self.state = WorkerState(stage)

    def _settle(self) -> None:
        try:
            enabled = self.store.is_enabled(self.connection_id)
        except Exception as e:
            logger.error(
                f"Could not re-check enabled flag: {e}",
                extra={"connection_id": str(self.connection_id)},
            )
            enabled = True
        self.state = WorkerState.IDLE if enabled else WorkerState.DISABLED

    async def tick(self) -> Optional[PollOutcome]:
        """Run one poll cycle unless one is already running or disabled."""
        if self.state is not WorkerState.IDLE:
            if self.in_flight:
                self.note_skipped()
            return None

        # Claimed before the first await so a concurrent tick sees FETCHING
        self.state = WorkerState.FETCHING
        try:
            try:
                snapshot = self.store.load_snapshot(self.connection_id)
            except Exception as e:
                logger.error(
                    f"Could not load connection: {e}",
                    extra={"connection_id": str(self.connection_id)},
                )
                return None
            if snapshot is None or not snapshot.enabled:
                return None

            outcome = await run_cycle(snapshot, self.fetcher, on_stage=self._on_stage)

            self.state = WorkerState.RECORDING
            try:
                record_outcome(self.store, outcome)
            except Exception as e:
                logger.error(
                    f"Recording poll result failed: {e}",
                    extra={"connection_id": str(self.connection_id)},
                )

            self.polls += 1
            self.last_outcome = outcome
            logger.info(
                f"Poll {outcome.status.value} ({len(outcome.records)} record(s))",
                extra={
                    "connection_id": str(self.connection_id),
                    "connection_type": snapshot.connection_type,
                    "status_code": outcome.fetch.http_status if outcome.fetch else None,
                    "duration_ms": outcome.duration_ms,
                },
            )
            return outcome
        finally:
            self._settle()
