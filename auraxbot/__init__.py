"""Auraxis Bot package.

Mirrors PlanetSide 2 game state into Telegram chats:
- config: environment and constants
- http: session helpers and the fetch gateway
- api: Census, fisu and PS2Alerts surface
- storage: SQLite registry of tracked entities and their sinks
- sinks: pushing renderings to messages and chat titles
- reconcile: per-tick fetch, render, update and cleanup
- trackers: the tracked entity classes
- formatting: message and title building utilities
- scheduler: periodic reconciliation jobs
- auth: access control helpers
- commands: telegram command handlers
- app: application bootstrap and wiring

Public facade (re-export) for tests and callers.
"""

from .config import Config, BOT_TOKEN, ALLOWED_USER_ID, SERVICE_ID, DATABASE_PATH
from .http import (
    make_session,
    build_headers,
    fetch,
    check_envelope,
    EndpointSpec,
    FetchError,
    Unreachable,
    MalformedEnvelope,
    UpstreamError,
    EntityNotFound,
    Exhausted,
)
from .api import (
    get_population,
    get_territory,
    get_outfit_online,
    get_alert,
    get_metagame_events,
    get_server_snapshot,
    resolve_platform,
    SERVER_IDS,
    SERVER_NAMES,
    PLATFORMS,
    CONTINENTS,
)
from .formatting import (
    population_name,
    territory_name,
    outfit_names,
    fmt_alert,
    fmt_server_dashboard,
    fmt_outfit_dashboard,
)
from .state import EntityClass, SinkKind, JOBS
from .storage import RegistryStore, RegistryRow
from .sinks import Rendering, SinkResult, apply_rendering, classify_error, edit_message, rename_chat
from .reconcile import TrackedClass, Outcome, EntityReport, RenderError, reconcile, reconcile_entity
from .trackers import TRACKED_CLASSES, alert_is_final, outfit_entity_id
from .scheduler import JOB_DEFINITIONS, run_tick, start_jobs, stop_jobs
from .auth import is_group_member, is_group_admin, is_authorized, guard_admin, guard_read
from .commands import (
    start_cmd,
    alert_cmd,
    dashboard_cmd,
    outfitdashboard_cmd,
    tracker_cmd,
    outfittracker_cmd,
    tracking_cmd,
    untrack_cmd,
)
from .app import main, startup_health_check

__all__ = [
    # Config / HTTP
    "Config", "BOT_TOKEN", "ALLOWED_USER_ID", "SERVICE_ID", "DATABASE_PATH",
    "make_session", "build_headers", "fetch", "check_envelope", "EndpointSpec",
    "FetchError", "Unreachable", "MalformedEnvelope", "UpstreamError", "EntityNotFound", "Exhausted",
    # API
    "get_population", "get_territory", "get_outfit_online", "get_alert", "get_metagame_events", "get_server_snapshot",
    "resolve_platform", "SERVER_IDS", "SERVER_NAMES", "PLATFORMS", "CONTINENTS",
    # Formatting
    "population_name", "territory_name", "outfit_names", "fmt_alert", "fmt_server_dashboard", "fmt_outfit_dashboard",
    # Registry / Sinks / Reconcile
    "EntityClass", "SinkKind", "JOBS", "RegistryStore", "RegistryRow",
    "Rendering", "SinkResult", "apply_rendering", "classify_error", "edit_message", "rename_chat",
    "TrackedClass", "Outcome", "EntityReport", "RenderError", "reconcile", "reconcile_entity",
    "TRACKED_CLASSES", "alert_is_final", "outfit_entity_id",
    "JOB_DEFINITIONS", "run_tick", "start_jobs", "stop_jobs",
    # Auth / Commands / App
    "is_group_member", "is_group_admin", "is_authorized", "guard_admin", "guard_read",
    "start_cmd", "alert_cmd", "dashboard_cmd", "outfitdashboard_cmd", "tracker_cmd", "outfittracker_cmd",
    "tracking_cmd", "untrack_cmd",
    "main", "startup_health_check",
]
