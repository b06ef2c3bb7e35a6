"""AIRLOG — One Poll Cycle.

fetch → evaluate, shared by the scheduled Poll Worker and the Test-Connection
Service. A cycle never raises: every failure becomes an ERROR outcome that the
caller records like any other result.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from airlog.connectors.fetcher import ProtocolFetcher, fetch_timeout
from airlog.core.errors import IngestError, ParseError, ProtocolError
from airlog.core.logging import get_logger
from airlog.mapping.evaluator import evaluate
from airlog.models.normalized_models import FetchResult, NormalizedRecord
from airlog.models.station_models import ConnectionStatus
from airlog.store.event_store import ConnectionSnapshot, EventStore

logger = get_logger("poller.cycle")


class PollOutcome(BaseModel):
    """Result of one fetch → evaluate pass."""

    connection_id: uuid.UUID
    station_id: uuid.UUID
    status: ConnectionStatus
    error: Optional[str] = None
    error_kind: Optional[str] = None
    fetch: Optional[FetchResult] = None
    records: List[NormalizedRecord] = Field(default_factory=list)
    polled_at: datetime
    duration_ms: float = 0.0

    def event_records(self) -> List[NormalizedRecord]:
        """Records to persist as RawEvents.

        No payload → nothing. A payload that failed (non-2xx, unparseable) is
        still kept once, with every reported field absent.
        """
        if self.fetch is None:
            return []
        if self.status is ConnectionStatus.ERROR:
            return [NormalizedRecord()]
        return list(self.records)


def _failed(
    snapshot: ConnectionSnapshot,
    polled_at: datetime,
    started: float,
    error: IngestError,
    fetch: Optional[FetchResult] = None,
) -> PollOutcome:
    return PollOutcome(
        connection_id=snapshot.connection_id,
        station_id=snapshot.station_id,
        status=ConnectionStatus.ERROR,
        error=error.describe(),
        error_kind=error.kind,
        fetch=fetch,
        polled_at=polled_at,
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
    )


async def run_cycle(
    snapshot: ConnectionSnapshot,
    fetcher: ProtocolFetcher,
    on_stage: Optional[Callable[[str], None]] = None,
) -> PollOutcome:
    """Fetch and evaluate one connection snapshot."""
    polled_at = datetime.now(timezone.utc)
    started = time.perf_counter()
    stage = on_stage or (lambda _stage: None)
    log_extra = {
        "connection_id": str(snapshot.connection_id),
        "connection_type": snapshot.connection_type,
    }

    stage("fetching")
    try:
        fetch = await fetcher.fetch(
            snapshot.url,
            snapshot.headers,
            snapshot.connection_type,
            fetch_timeout(snapshot.poll_interval_seconds),
            connection_id=snapshot.connection_id,
        )
    except IngestError as e:
        logger.warning(f"Fetch failed: {e.describe()}", extra=log_extra)
        return _failed(snapshot, polled_at, started, e)
    except Exception as e:
        logger.exception("Unexpected fetch failure", extra=log_extra)
        return _failed(snapshot, polled_at, started, IngestError(f"{type(e).__name__}: {e}"))

    if not fetch.is_success:
        error = ProtocolError(
            f"HTTP {fetch.http_status} from {snapshot.url}", http_status=fetch.http_status
        )
        logger.warning(
            error.describe(), extra={**log_extra, "status_code": fetch.http_status}
        )
        return _failed(snapshot, polled_at, started, error, fetch=fetch)

    stage("evaluating")
    try:
        evaluation = evaluate(
            fetch.body, fetch.content_type, snapshot.connection_type, snapshot.mapping
        )
    except Exception as e:
        logger.exception("Unexpected evaluation failure", extra=log_extra)
        return _failed(
            snapshot, polled_at, started, IngestError(f"{type(e).__name__}: {e}"), fetch=fetch
        )

    if not evaluation.ok:
        logger.warning(f"Parse failed: {evaluation.parse_error}", extra=log_extra)
        error = ParseError(evaluation.parse_error.split(": ", 1)[-1])
        return _failed(snapshot, polled_at, started, error, fetch=fetch)

    return PollOutcome(
        connection_id=snapshot.connection_id,
        station_id=snapshot.station_id,
        status=ConnectionStatus.OK,
        fetch=fetch,
        records=evaluation.records,
        polled_at=polled_at,
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
    )


def record_outcome(store: EventStore, outcome: PollOutcome) -> bool:
    """Persist an outcome through the store's atomic recording path."""
    return store.record(
        connection_id=outcome.connection_id,
        station_id=outcome.station_id,
        fetch=outcome.fetch,
        records=outcome.event_records(),
        status=outcome.status,
        error=outcome.error,
        polled_at=outcome.polled_at,
    )
