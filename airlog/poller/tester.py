"""AIRLOG — Test-Connection Service.

Runs one poll cycle on demand, independent of the scheduler's cadence, and
hands the full result back to the caller. Whether the result also lands in
the store is configurable; when it does, it goes through the same atomic
recording path as the scheduled worker.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from airlog.config import settings
from airlog.connectors.fetcher import ProtocolFetcher
from airlog.core.errors import ConnectionNotFound
from airlog.core.logging import get_logger
from airlog.models.normalized_models import NormalizedRecord
from airlog.poller.cycle import record_outcome, run_cycle
from airlog.store.event_store import EventStore

logger = get_logger("poller.tester")


class ConnectionTestResult(BaseModel):
    """Synchronous result of a test poll."""

    connection_id: uuid.UUID
    status: str
    error: Optional[str] = None
    error_kind: Optional[str] = None
    http_status: Optional[int] = None
    content_type: Optional[str] = None
    raw_payload: Optional[str] = None
    records: List[NormalizedRecord] = Field(default_factory=list)
    polled_at: datetime
    duration_ms: float = 0.0
    recorded: bool = False


class ConnectionTester:
    """Runs fetch → evaluate once for a single connection."""

    def __init__(
        self,
        store: EventStore,
        fetcher: ProtocolFetcher,
        updates_status: Optional[bool] = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.updates_status = (
            settings.test_updates_status if updates_status is None else updates_status
        )

    async def run(
        self, connection_id: uuid.UUID, record: Optional[bool] = None
    ) -> ConnectionTestResult:
        """Test a connection, enabled or not.

        Raises:
            ConnectionNotFound: if the connection does not exist.
        """
        snapshot = self.store.load_snapshot(connection_id)
        if snapshot is None:
            raise ConnectionNotFound(connection_id)

        outcome = await run_cycle(snapshot, self.fetcher)

        should_record = self.updates_status if record is None else record
        recorded = record_outcome(self.store, outcome) if should_record else False

        logger.info(
            f"Test poll {outcome.status.value} (recorded={recorded})",
            extra={
                "connection_id": str(connection_id),
                "connection_type": snapshot.connection_type,
                "duration_ms": outcome.duration_ms,
            },
        )
        fetch = outcome.fetch
        return ConnectionTestResult(
            connection_id=connection_id,
            status=outcome.status.value,
            error=outcome.error,
            error_kind=outcome.error_kind,
            http_status=fetch.http_status if fetch else None,
            content_type=fetch.content_type if fetch else None,
            raw_payload=fetch.body if fetch else None,
            records=outcome.records,
            polled_at=outcome.polled_at,
            duration_ms=outcome.duration_ms,
            recorded=recorded,
        )
