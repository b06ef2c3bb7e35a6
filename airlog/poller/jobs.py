"""AIRLOG — Scheduler Jobs.

Process-wide engine wiring: one fetcher, one event store and the poll
scheduler that drives every connection, plus FastAPI dependency getters.
"""

from airlog.config import settings
from airlog.connectors.fetcher import ProtocolFetcher, WebSocketFetcher
from airlog.core.logging import get_logger
from airlog.database import engine
from airlog.poller.scheduler import PollScheduler
from airlog.poller.tester import ConnectionTester
from airlog.store.event_store import EventStore

logger = get_logger("scheduler")

event_store = EventStore(engine)
fetcher = ProtocolFetcher()
poll_scheduler = PollScheduler(store=event_store, fetcher=fetcher)

# Tests never share the scheduler's persistent sockets
connection_tester = ConnectionTester(
    store=event_store,
    fetcher=ProtocolFetcher(
        http=fetcher.http, websocket=WebSocketFetcher(persistent=False)
    ),
)


def start_scheduler():
    """Start the poll scheduler (must run inside the event loop)."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return
    poll_scheduler.start()
    logger.info(
        f"Scheduler started. Reconciling connections every "
        f"{poll_scheduler.reconcile_interval_seconds}s"
    )


async def stop_scheduler():
    """Shutdown the scheduler and close network clients."""
    poll_scheduler.shutdown()
    await fetcher.close()
    await connection_tester.fetcher.websocket.close()


# ── Dependencies ──


def get_event_store() -> EventStore:
    return event_store


def get_poll_scheduler() -> PollScheduler:
    return poll_scheduler


def get_connection_tester() -> ConnectionTester:
    return connection_tester
