from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Tuple

import aiohttp

from . import api
from .config import ALERT_GRACE_MINUTES, logger
from .formatting import (
    FACTIONS,
    fmt_alert,
    fmt_outfit_dashboard,
    fmt_server_dashboard,
    outfit_names,
    parse_api_time,
    population_name,
    territory_name,
)
from .http import FetchError
from .reconcile import RenderError, TrackedClass
from .sinks import Rendering
from .state import EntityClass, SinkKind


OUTFIT_ID_SEPARATOR = "|"


def outfit_entity_id(platform: str, outfit_id: str) -> str:
    return f"{platform}{OUTFIT_ID_SEPARATOR}{outfit_id}"


def split_outfit_entity_id(entity_id: str) -> Tuple[str, str]:
    platform, _, outfit_id = entity_id.partition(OUTFIT_ID_SEPARATOR)
    if not outfit_id:
        return api.PLATFORMS["pc"], platform
    return platform, outfit_id


def server_id_for(entity_id: str) -> int:
    try:
        return api.SERVER_IDS[entity_id]
    except KeyError:
        raise RenderError(f"Unknown server '{entity_id}'") from None


def alert_is_final(info: Dict[str, Any], now: datetime, grace_minutes: int = ALERT_GRACE_MINUTES) -> bool:
    """Whether an alert can stop being tracked.

    PS2Alerts fills in the winner a little after the alert ends, so an ended
    alert with no victor is kept for ``grace_minutes`` past its end time.
    """
    ended = parse_api_time(info.get("timeEnded"))
    if ended is None:
        return False
    result = info.get("result") or {}
    if result.get("draw"):
        return True
    if str(result.get("victor")) in FACTIONS:
        return True
    return now - ended >= timedelta(minutes=grace_minutes)


class AlertTracker(TrackedClass):
    entity_class = EntityClass.ALERT
    sink_kind = SinkKind.MESSAGE

    async def fetch(self, session: aiohttp.ClientSession, entity_id: str) -> Dict[str, Any]:
        info = await api.get_alert(session, entity_id)
        event_type = str(info.get("censusMetagameEventType"))
        try:
            events = await api.get_metagame_events(session)
        except FetchError as e:
            # Names are cosmetic, the alert itself still renders
            logger.warning(f"Could not load metagame event names: {e}")
            events = {}
        return {"info": info, "event": events.get(event_type, {"name": f"Alert {event_type}", "description": ""})}

    def render(self, snapshot: Dict[str, Any], now: datetime) -> Rendering:
        info = snapshot["info"]
        try:
            return Rendering(fmt_alert(info, snapshot["event"], now, finished=info.get("timeEnded") is not None))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise RenderError(f"Error displaying territory for alert {info.get('instanceId')}") from e

    def is_terminal(self, snapshot: Dict[str, Any], now: datetime) -> bool:
        return alert_is_final(snapshot["info"], now)


class ServerDashboard(TrackedClass):
    entity_class = EntityClass.SERVER_DASHBOARD
    sink_kind = SinkKind.MESSAGE

    async def fetch(self, session: aiohttp.ClientSession, entity_id: str) -> Dict[str, Any]:
        return await api.get_server_snapshot(session, server_id_for(entity_id))

    def render(self, snapshot: Dict[str, Any], now: datetime) -> Rendering:
        return Rendering(fmt_server_dashboard(snapshot, now))


class OutfitDashboard(TrackedClass):
    entity_class = EntityClass.OUTFIT_DASHBOARD
    sink_kind = SinkKind.MESSAGE

    async def fetch(self, session: aiohttp.ClientSession, entity_id: str) -> Dict[str, Any]:
        platform, outfit_id = split_outfit_entity_id(entity_id)
        return await api.get_outfit_online(session, platform, outfit_id=outfit_id)

    def render(self, snapshot: Dict[str, Any], now: datetime) -> Rendering:
        return Rendering(fmt_outfit_dashboard(snapshot, now))


class PopulationTracker(TrackedClass):
    entity_class = EntityClass.POPULATION_TRACKER
    sink_kind = SinkKind.CHANNEL

    async def fetch(self, session: aiohttp.ClientSession, entity_id: str) -> Dict[str, int]:
        return await api.get_population(session, server_id_for(entity_id))

    def render(self, snapshot: Dict[str, int], now: datetime) -> Rendering:
        return Rendering(population_name(snapshot))


class TerritoryTracker(TrackedClass):
    entity_class = EntityClass.TERRITORY_TRACKER
    sink_kind = SinkKind.CHANNEL

    async def fetch(self, session: aiohttp.ClientSession, entity_id: str) -> Dict[str, Any]:
        server_id = server_id_for(entity_id)
        return {"world": server_id, "territory": await api.get_territory(session, server_id)}

    def render(self, snapshot: Dict[str, Any], now: datetime) -> Rendering:
        return Rendering(territory_name(snapshot["world"], snapshot["territory"]))


class OutfitTracker(TrackedClass):
    entity_class = EntityClass.OUTFIT_TRACKER
    sink_kind = SinkKind.CHANNEL

    async def fetch(self, session: aiohttp.ClientSession, entity_id: str) -> Dict[str, Any]:
        platform, outfit_id = split_outfit_entity_id(entity_id)
        return await api.get_outfit_online(session, platform, outfit_id=outfit_id)

    def render(self, snapshot: Dict[str, Any], now: datetime) -> Rendering:
        names = outfit_names(snapshot)
        return Rendering(names["faction"], variants=names)


TRACKED_CLASSES: Dict[EntityClass, TrackedClass] = {
    tracked.entity_class: tracked
    for tracked in (
        AlertTracker(),
        ServerDashboard(),
        OutfitDashboard(),
        PopulationTracker(),
        TerritoryTracker(),
        OutfitTracker(),
    )
}
