from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp

from .config import CENSUS_API_URL, FISU_API_URL, PS2ALERTS_API_URL, SERVICE_ID, cached_api_call
from .http import EndpointSpec, EntityNotFound, MalformedEnvelope, UpstreamError, fetch


# serverName: serverID
SERVER_IDS: Dict[str, int] = {
    "connery": 1,
    "miller": 10,
    "cobalt": 13,
    "emerald": 17,
    "jaeger": 19,
    "soltech": 40,
    "genudine": 1000,
    "ceres": 2000,
}

# serverID: display name
SERVER_NAMES: Dict[int, str] = {
    1: "Connery",
    10: "Miller",
    13: "Cobalt",
    17: "Emerald",
    19: "Jaeger",
    40: "SolTech",
    1000: "Genudine",
    2000: "Ceres",
}

PLATFORMS: Dict[str, str] = {
    "pc": "ps2:v2",
    "ps4us": "ps2ps4us:v2",
    "ps4eu": "ps2ps4eu:v2",
}

# Raised while picking apart a payload whose inner shape is off
PARSE_ERRORS = (TypeError, ValueError, AttributeError, KeyError)

# zoneID: continent
CONTINENTS: Dict[str, str] = {
    "2": "Indar",
    "4": "Hossin",
    "6": "Amerish",
    "8": "Esamir",
    "344": "Oshur",
    "14": "Koltyr",
}


def platform_for_server(server_id: int) -> str:
    if server_id == 1000:
        return PLATFORMS["ps4us"]
    if server_id == 2000:
        return PLATFORMS["ps4eu"]
    return PLATFORMS["pc"]


def resolve_platform(value: Optional[str]) -> str:
    """Accept either a short alias (pc, ps4us, ps4eu) or a full Census namespace."""
    if not value:
        return PLATFORMS["pc"]
    value = value.strip().lower()
    if value in PLATFORMS:
        return PLATFORMS[value]
    if value in PLATFORMS.values():
        return value
    raise ValueError(f"Unknown platform '{value}'. Use one of: {', '.join(PLATFORMS)}")


def census_endpoint(platform: str, key: str, extension: str, params: Optional[Dict[str, str]] = None) -> EndpointSpec:
    return EndpointSpec(
        url=f"{CENSUS_API_URL}/s:{SERVICE_ID}/get/{platform}/{extension.lstrip('/')}",
        key=key,
        params=params,
        label="Census API",
    )


def fisu_population_url(server_id: int) -> str:
    if server_id == 2000:
        return "https://ps4eu.ps2.fisu.pw/api/population/"
    if server_id == 1000:
        return "https://ps4us.ps2.fisu.pw/api/population/"
    return f"{FISU_API_URL}/api/population/"


async def get_population(session: aiohttp.ClientSession, server_id: int) -> Dict[str, int]:
    endpoint = EndpointSpec(
        url=fisu_population_url(server_id),
        key="result",
        params={"world": str(server_id)},
        label="fisu API",
    )
    result = await fetch(session, endpoint)
    if not result:
        raise UpstreamError("empty_result", f"No population data for world {server_id}", endpoint.url)
    try:
        counts = result[0]
        return {
            "vs": int(counts.get("vs", 0)),
            "nc": int(counts.get("nc", 0)),
            "tr": int(counts.get("tr", 0)),
            "ns": int(counts.get("ns", 0)),
            "world": server_id,
        }
    except PARSE_ERRORS as e:
        raise MalformedEnvelope(f"fisu API returned unexpected population data: {e}", endpoint.url) from e


async def get_territory(session: aiohttp.ClientSession, server_id: int) -> Dict[str, Dict[str, Any]]:
    """Territory control per continent on a server.

    Each continent maps to ``{vs, nc, tr, locked, unstable}``. ``locked`` is
    the owning faction id, or -1 while the continent is open. Warpgates are
    discounted from each faction's count.
    """
    endpoint = census_endpoint(
        platform_for_server(server_id),
        "map_list",
        "/map/",
        params={"world_id": str(server_id), "zone_ids": ",".join(CONTINENTS)},
    )
    zones = await fetch(session, endpoint)
    if len(zones) < 3:
        raise UpstreamError("missing_continents", "API response missing continents", endpoint.url)

    territory: Dict[str, Dict[str, Any]] = {
        name: {"vs": 0, "nc": 0, "tr": 0, "locked": -1, "unstable": False}
        for name in CONTINENTS.values()
    }
    try:
        for zone in zones:
            regions = zone.get("Regions")
            if regions is None:
                raise UpstreamError("missing_regions", "API response missing Regions field", endpoint.url)
            name = CONTINENTS.get(str(zone.get("ZoneId")))
            if name is None:
                continue
            counts = {"1": 0, "2": 0, "3": 0}
            unstable = False
            for row in regions.get("Row", []):
                faction_id = str(row.get("RowData", {}).get("FactionId"))
                if faction_id in counts:
                    counts[faction_id] += 1
                else:
                    unstable = True
            territory[name] = {"vs": counts["1"], "nc": counts["2"], "tr": counts["3"], "locked": -1, "unstable": unstable}
    except PARSE_ERRORS as e:
        raise MalformedEnvelope(f"Census API returned unexpected map data: {e}", endpoint.url) from e

    for cont in territory.values():
        total = cont["vs"] + cont["nc"] + cont["tr"]
        if total:
            for faction_id, key in (("1", "vs"), ("2", "nc"), ("3", "tr")):
                if cont[key] == total:
                    cont["locked"] = int(faction_id)
        # Account for warpgates
        for key in ("vs", "nc", "tr"):
            cont[key] = max(0, cont[key] - 1)

    return territory


def _outfit_query(outfit_id: Optional[str], tag: Optional[str]) -> Dict[str, str]:
    if outfit_id:
        search = {"outfit_id": str(outfit_id)}
    elif tag:
        search = {"alias_lower": tag.lower()}
    else:
        raise ValueError("An outfit id or tag is required")
    # Census takes several joins as one comma separated c:join value
    search["c:join"] = ",".join([
        "outfit_member^inject_at:members^show:character_id'rank^outer:0^list:1"
        "(character^show:name.first^inject_at:character^outer:0^on:character_id"
        "(characters_online_status^inject_at:online_status^show:online_status^outer:0))",
        "character^on:leader_character_id^to:character_id^inject_at:leader^show:faction_id",
    ])
    return search


async def get_outfit_online(
    session: aiohttp.ClientSession,
    platform: str,
    outfit_id: Optional[str] = None,
    tag: Optional[str] = None,
) -> Dict[str, Any]:
    """Online members of an outfit, looked up by id or by tag."""
    endpoint = census_endpoint(platform, "outfit_list", "/outfit", params=_outfit_query(outfit_id, tag))
    outfits = await fetch(session, endpoint)
    if not outfits:
        raise EntityNotFound(f"{tag or outfit_id} not found", endpoint.url)

    try:
        outfit = outfits[0]
        members: List[Dict[str, Any]] = outfit.get("members") or []
        online: List[str] = []
        reported = False
        for member in members:
            character = member.get("character") or {}
            status = (character.get("online_status") or {}).get("online_status")
            if status is None:
                continue
            reported = True
            if str(status) != "0":
                online.append(str((character.get("name") or {}).get("first", "?")))

        return {
            "outfit_id": str(outfit.get("outfit_id", outfit_id or "")),
            "alias": outfit.get("alias") or "",
            "name": outfit.get("name") or "",
            "faction": str((outfit.get("leader") or {}).get("faction_id", "0")),
            "members": len(members),
            "online": sorted(online, key=str.lower),
            "online_count": len(online) if reported or not members else -1,
        }
    except PARSE_ERRORS as e:
        raise MalformedEnvelope(f"Census API returned unexpected outfit data: {e}", endpoint.url) from e


async def get_alert(session: aiohttp.ClientSession, instance_id: str) -> Dict[str, Any]:
    endpoint = EndpointSpec(
        url=f"{PS2ALERTS_API_URL}/instances/{instance_id}",
        required=("instanceId", "world", "timeStarted"),
        label="PS2Alerts API",
    )
    return await fetch(session, endpoint)


@cached_api_call(lambda session: "metagame_events")
async def get_metagame_events(session: aiohttp.ClientSession) -> Dict[str, Dict[str, str]]:
    """Names and descriptions of every metagame event type, keyed by type id."""
    endpoint = census_endpoint(
        "ps2:v2",
        "metagame_event_list",
        "/metagame_event",
        params={"c:limit": "1000", "c:show": "metagame_event_id,name.en,description.en"},
    )
    events = await fetch(session, endpoint)
    try:
        return {
            str(event.get("metagame_event_id")): {
                "name": (event.get("name") or {}).get("en", "Alert"),
                "description": (event.get("description") or {}).get("en", ""),
            }
            for event in events
        }
    except PARSE_ERRORS as e:
        raise MalformedEnvelope(f"Census API returned unexpected metagame event data: {e}", endpoint.url) from e


async def get_server_snapshot(session: aiohttp.ClientSession, server_id: int) -> Dict[str, Any]:
    population, territory = await asyncio.gather(
        get_population(session, server_id),
        get_territory(session, server_id),
    )
    return {"world": server_id, "population": population, "territory": territory}
