from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .api import CONTINENTS, SERVER_NAMES


FACTIONS: Dict[str, Dict[str, str]] = {
    "1": {"initial": "VS", "tracker": "🟣", "win": "🟣 VS win"},
    "2": {"initial": "NC", "tracker": "🔵", "win": "🔵 NC win"},
    "3": {"initial": "TR", "tracker": "🔴", "win": "🔴 TR win"},
}
NSO = {"initial": "NSO", "tracker": "⚪", "win": "⚪ NSO win"}

POP_LEVELS = {
    1: "Dead",
    2: "Low",
    3: "Medium",
    4: "High",
    5: "Prime",
}


def _escape_html(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def faction(faction_id: Any) -> Dict[str, str]:
    return FACTIONS.get(str(faction_id), NSO)


def server_name(server_id: int) -> str:
    return SERVER_NAMES.get(int(server_id), f"World {server_id}")


def fmt_percent(n: float) -> str:
    """Standardize how percentages read across messages."""
    if n >= 100:
        return f"{n:.1f}".rstrip("0").rstrip(".")
    if n > 1:
        return f"{n:.2f}".rstrip("0").rstrip(".")
    return f"{n:.3f}".rstrip("0").rstrip(".")


def parse_api_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _fmt_time(dt: datetime) -> str:
    return dt.strftime("%H:%M UTC")


def _fmt_delta(delta: timedelta) -> str:
    minutes = max(0, int(delta.total_seconds() // 60))
    if minutes >= 60:
        return f"{minutes // 60}h {minutes % 60:02d}m"
    return f"{minutes}m"


# Tracker names (channel titles)

def population_name(population: Dict[str, int]) -> str:
    total = population.get("vs", 0) + population.get("nc", 0) + population.get("tr", 0) + population.get("ns", 0)
    return f"{server_name(population['world'])}: {total} online"


def territory_name(server_id: int, territory: Dict[str, Dict[str, Any]]) -> str:
    open_list = [name for name, cont in territory.items() if cont["locked"] == -1 and cont["vs"] + cont["nc"] + cont["tr"] > 0]
    return f"{server_name(server_id)}: {', '.join(open_list) if open_list else 'none open'}"


def outfit_names(outfit: Dict[str, Any]) -> Dict[str, str]:
    count = "?" if outfit["online_count"] == -1 else str(outfit["online_count"])
    plain = f"{outfit['alias']}: {count} online"
    return {
        "faction": f"{faction(outfit['faction'])['tracker']} {plain}",
        "plain": plain,
    }


# Message bodies

def fmt_alert(info: Dict[str, Any], event: Dict[str, str], now: datetime, finished: bool) -> str:
    """HTML status message for an alert instance.

    Raises KeyError/TypeError when the instance carries no territory result.
    """
    result = info["result"]
    title = _escape_html(event.get("name") or "Alert")
    description = _escape_html(event.get("description") or "")
    url = f"https://ps2alerts.com/alert/{info['instanceId']}"

    lines: List[str] = [f"🚨 <b>{title}</b>"]
    if description:
        lines.append(f"<i>{description}</i>")
    lines.append("")
    lines.append(f"🌐 <b>Server:</b> {server_name(info['world'])}")

    started = parse_api_time(info.get("timeStarted"))
    ended = parse_api_time(info.get("timeEnded"))
    if finished and ended:
        lines.append(f"🏁 <b>Status:</b> ended {_fmt_delta(now - ended)} ago")
    elif started:
        duration_ms = int(info.get("duration") or 0)
        ends = started + timedelta(milliseconds=duration_ms)
        lines.append(f"⏱ <b>Status:</b> started {_fmt_time(started)}, ends in {_fmt_delta(ends - now)}")

    bracket = info.get("bracket")
    if bracket in POP_LEVELS:
        lines.append(f"👥 <b>Population:</b> {POP_LEVELS[bracket]}")

    lines.append("")
    lines.append("<b>Territory Control</b>")
    lines.append(f"🟣 <b>VS</b>: {result['vs']}%")
    lines.append(f"🔵 <b>NC</b>: {result['nc']}%")
    lines.append(f"🔴 <b>TR</b>: {result['tr']}%")

    if finished:
        if result.get("draw"):
            outcome = "Draw"
        elif str(result.get("victor")) in FACTIONS:
            outcome = FACTIONS[str(result["victor"])]["win"]
        else:
            outcome = "Pending"
        lines.append("")
        lines.append(f"🏆 <b>Result:</b> {outcome}")

    lines.append("")
    lines.append(f'<a href="{url}">ps2alerts.com</a> · 🕒 <i>Updated {_fmt_time(now)}</i>')
    return "\n".join(lines)


def fmt_server_dashboard(snapshot: Dict[str, Any], now: datetime) -> str:
    server_id = snapshot["world"]
    pop = snapshot["population"]
    total = pop["vs"] + pop["nc"] + pop["tr"] + pop["ns"]
    divisor = max(total, 1)

    lines: List[str] = [f"📊 <b>{server_name(server_id)}</b> · {total} online", ""]
    for key, label, emoji in (("vs", "VS", "🟣"), ("nc", "NC", "🔵"), ("tr", "TR", "🔴"), ("ns", "NSO", "⚪")):
        lines.append(f"{emoji} <b>{label}</b>: {pop[key]}  |  {fmt_percent(pop[key] / divisor * 100)}%")

    lines.append("")
    lines.append("<b>Continents</b>")
    for name in CONTINENTS.values():
        cont = snapshot["territory"].get(name)
        if not cont:
            continue
        owned = cont["vs"] + cont["nc"] + cont["tr"]
        if cont["locked"] != -1:
            lines.append(f"🔒 {name}: locked by {faction(cont['locked'])['initial']}")
        elif owned:
            flag = " ⚠️ unstable" if cont["unstable"] else ""
            lines.append(
                f"🔓 {name}{flag}: VS {fmt_percent(cont['vs'] / owned * 100)}% · "
                f"NC {fmt_percent(cont['nc'] / owned * 100)}% · TR {fmt_percent(cont['tr'] / owned * 100)}%"
            )

    lines.append("")
    lines.append(f"🕒 <i>Updated {_fmt_time(now)}</i>")
    return "\n".join(lines)


def fmt_outfit_dashboard(outfit: Dict[str, Any], now: datetime) -> str:
    name = _escape_html(outfit["name"])
    alias = _escape_html(outfit["alias"])
    emoji = faction(outfit["faction"])["tracker"]
    if outfit["online_count"] == -1:
        online_line = "❓ Online status unavailable"
    else:
        online_line = f"🟢 <b>{outfit['online_count']}</b> of {outfit['members']} members online"

    lines: List[str] = [f"{emoji} <b>[{alias}] {name}</b>", online_line]
    if outfit["online"]:
        lines.append("")
        lines.extend(f"• {_escape_html(member)}" for member in outfit["online"][:50])
        if len(outfit["online"]) > 50:
            lines.append(f"<i>…and {len(outfit['online']) - 50} more</i>")

    lines.append("")
    lines.append(f"🕒 <i>Updated {_fmt_time(now)}</i>")
    return "\n".join(lines)
