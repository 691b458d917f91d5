"""Registry reconciliation.

Every tick, each entity registered for a tracked class is fetched, rendered
and pushed to all of its sinks. Failures decide what happens to the rows:

- a sink that no longer exists loses its own row;
- a failed fetch flags the entity, a second consecutive one deletes its rows;
- a terminal entity is retired once the rendering went out.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp

from .config import logger
from .http import EntityNotFound, FetchError
from .sinks import Rendering, SinkResult, apply_rendering
from .state import EntityClass, SinkKind
from .storage import RegistryStore


class RenderError(Exception):
    """The snapshot lacks data needed to render it."""


class Outcome(Enum):
    UPDATED = "updated"
    RETIRED = "retired"
    FLAGGED = "flagged"
    DROPPED = "dropped"
    GONE = "gone"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class EntityReport:
    entity_id: str
    outcome: Outcome
    sink_results: Dict[int, SinkResult] = field(default_factory=dict)
    error: Optional[str] = None


class TrackedClass:
    """A kind of remote entity mirrored into chat sinks.

    Subclasses say how to fetch one entity, how to render it and when it is
    finished. ``sink_kind`` is the kind of sink the creation path produces.
    """

    entity_class: EntityClass
    sink_kind: SinkKind = SinkKind.MESSAGE

    async def fetch(self, session: aiohttp.ClientSession, entity_id: str) -> Any:
        raise NotImplementedError

    def render(self, snapshot: Any, now: datetime) -> Rendering:
        raise NotImplementedError

    def is_terminal(self, snapshot: Any, now: datetime) -> bool:
        return False


async def escalate(store: RegistryStore, tracked: TrackedClass, entity_id: str, flagged: bool, error: Exception) -> EntityReport:
    """Two strikes: flag on the first failed fetch, delete on the second."""
    cls = tracked.entity_class
    if flagged:
        await store.delete_rows(cls, entity_id)
        logger.warning(f"Dropped {cls.value} {entity_id} after repeated failures: {error}")
        return EntityReport(entity_id, Outcome.DROPPED, error=str(error))

    await store.set_error_flag(cls, entity_id, True)
    logger.warning(f"Error retrieving {cls.value} {entity_id}, will retry next tick: {error}")
    return EntityReport(entity_id, Outcome.FLAGGED, error=str(error))


async def reconcile_entity(
    tracked: TrackedClass,
    entity_id: str,
    store: RegistryStore,
    bot,
    session: aiohttp.ClientSession,
    now: datetime,
) -> EntityReport:
    cls = tracked.entity_class
    rows = await store.list_rows(cls, entity_id)
    if not rows:
        return EntityReport(entity_id, Outcome.SKIPPED)
    flagged = any(row.error for row in rows)

    try:
        snapshot = await tracked.fetch(session, entity_id)
        rendering = tracked.render(snapshot, now)
    except EntityNotFound as e:
        await store.delete_rows(cls, entity_id)
        logger.info(f"{cls.value} {entity_id} no longer exists upstream, removed from registry")
        return EntityReport(entity_id, Outcome.GONE, error=str(e))
    except (FetchError, RenderError) as e:
        return await escalate(store, tracked, entity_id, flagged, e)

    if flagged:
        await store.set_error_flag(cls, entity_id, False)

    report = EntityReport(entity_id, Outcome.UPDATED)
    # Rows of one entity go out one at a time, the chat API is rate limited
    for row in rows:
        result = await apply_rendering(bot, rendering, row)
        report.sink_results[row.row_id] = result
        if result == SinkResult.NOT_FOUND:
            await store.delete_row(row.row_id)

    if tracked.is_terminal(snapshot, now):
        await store.delete_rows(cls, entity_id)
        logger.info(f"{cls.value} {entity_id} finished, stopped tracking")
        report.outcome = Outcome.RETIRED

    return report


async def reconcile(
    tracked: TrackedClass,
    store: RegistryStore,
    bot,
    session: aiohttp.ClientSession,
    now: Optional[datetime] = None,
) -> List[EntityReport]:
    """Reconcile every registered entity of one tracked class.

    Entities are processed concurrently and all of them settle before this
    returns; a crash in one entity is reported as ``FAILED`` and does not
    affect the rest.
    """
    now = now or datetime.now(timezone.utc)
    cls = tracked.entity_class
    entity_ids = await store.list_distinct_entities(cls)
    if not entity_ids:
        logger.debug(f"No {cls.value} entities registered")
        return []

    results = await asyncio.gather(
        *[reconcile_entity(tracked, entity_id, store, bot, session, now) for entity_id in entity_ids],
        return_exceptions=True,
    )

    reports: List[EntityReport] = []
    for entity_id, result in zip(entity_ids, results):
        if isinstance(result, BaseException):
            logger.error(f"Error reconciling {cls.value} {entity_id}: {type(result).__name__}: {result}")
            reports.append(EntityReport(entity_id, Outcome.FAILED, error=str(result)))
        else:
            reports.append(result)

    counts: Dict[str, int] = {}
    for report in reports:
        counts[report.outcome.value] = counts.get(report.outcome.value, 0) + 1
    logger.info(f"Reconciled {len(reports)} {cls.value} entities: {counts}")
    return reports
