from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

from .config import ALERT_POLL_SECS, DASHBOARD_POLL_SECS, TRACKER_POLL_SECS, logger
from .http import make_session
from .reconcile import EntityReport, TrackedClass, reconcile
from .state import JOBS, STOP_EVENT, EntityClass
from .storage import RegistryStore
from .trackers import TRACKED_CLASSES


# job name -> (tracked classes, interval in seconds)
JOB_DEFINITIONS: Dict[str, Tuple[Tuple[EntityClass, ...], int]] = {
    "alerts": ((EntityClass.ALERT,), ALERT_POLL_SECS),
    "dashboards": ((EntityClass.SERVER_DASHBOARD, EntityClass.OUTFIT_DASHBOARD), DASHBOARD_POLL_SECS),
    "trackers": (
        (EntityClass.POPULATION_TRACKER, EntityClass.TERRITORY_TRACKER, EntityClass.OUTFIT_TRACKER),
        TRACKER_POLL_SECS,
    ),
}


async def run_tick(
    tracked_classes: Sequence[TrackedClass],
    store: RegistryStore,
    bot,
) -> Dict[EntityClass, List[EntityReport]]:
    """Reconcile each tracked class once, sharing one HTTP session."""
    reports: Dict[EntityClass, List[EntityReport]] = {}
    async with make_session() as session:
        for tracked in tracked_classes:
            try:
                reports[tracked.entity_class] = await reconcile(tracked, store, bot, session)
            except Exception as e:
                logger.error(f"Error updating {tracked.entity_class.value} entities: {type(e).__name__}: {e}")
    return reports


async def job_loop(
    name: str,
    tracked_classes: Sequence[TrackedClass],
    interval: float,
    store: RegistryStore,
    bot,
    stop_event: asyncio.Event,
):
    """Run ``tracked_classes`` every ``interval`` seconds until ``stop_event`` is set."""
    logger.info(f"Started {name} job, every {interval}s")
    try:
        while not stop_event.is_set():
            try:
                await run_tick(tracked_classes, store, bot)
            except Exception as e:
                logger.error(f"{name} job error: {e}")

            # Wait for next tick or stop event
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
    finally:
        JOBS.pop(name, None)
        logger.info(f"{name} job stopped")


def start_jobs(store: RegistryStore, bot, stop_event: Optional[asyncio.Event] = None) -> asyncio.Event:
    """Start every reconciliation job that is not already running."""
    if stop_event is None:
        stop_event = STOP_EVENT["event"] or asyncio.Event()
    STOP_EVENT["event"] = stop_event

    for name, (classes, interval) in JOB_DEFINITIONS.items():
        if name in JOBS:
            continue  # Already running
        tracked = [TRACKED_CLASSES[cls] for cls in classes]
        JOBS[name] = asyncio.create_task(job_loop(name, tracked, interval, store, bot, stop_event))
    return stop_event


async def stop_jobs() -> None:
    stop_event = STOP_EVENT["event"]
    if stop_event is not None:
        stop_event.set()
    tasks = list(JOBS.values())
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
    STOP_EVENT["event"] = None
    logger.info("All jobs stopped")
