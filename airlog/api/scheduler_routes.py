"""AIRLOG — Scheduler API Routes."""

from fastapi import APIRouter, Depends

from airlog.poller.jobs import get_poll_scheduler
from airlog.poller.scheduler import PollScheduler

router = APIRouter(prefix="/scheduler", tags=["Scheduler"])


@router.get("/status")
async def scheduler_status(scheduler: PollScheduler = Depends(get_poll_scheduler)):
    """Per-connection worker state, poll counts and next run times."""
    return {
        "running": scheduler.running,
        "workers": scheduler.status(),
    }


@router.post("/reconcile")
async def reconcile(scheduler: PollScheduler = Depends(get_poll_scheduler)):
    """Force an immediate reconcile against the stored connections."""
    report = scheduler.reconcile()
    return {
        "running": scheduler.running,
        "added": [str(i) for i in report.added],
        "removed": [str(i) for i in report.removed],
        "paused": [str(i) for i in report.paused],
        "resumed": [str(i) for i in report.resumed],
        "rescheduled": [str(i) for i in report.rescheduled],
    }
