from __future__ import annotations

import asyncio
from enum import Enum
from typing import Dict, Optional


class EntityClass(Enum):
    """Kinds of tracked entities kept in the registry"""
    ALERT = "alert"
    SERVER_DASHBOARD = "server_dashboard"
    OUTFIT_DASHBOARD = "outfit_dashboard"
    POPULATION_TRACKER = "population_tracker"
    TERRITORY_TRACKER = "territory_tracker"
    OUTFIT_TRACKER = "outfit_tracker"


class SinkKind(Enum):
    """Where a rendering ends up on the chat platform"""
    MESSAGE = "message"  # message to edit
    CHANNEL = "channel"  # chat to rename


# Runtime state (module-level singletons)
JOBS: Dict[str, asyncio.Task] = {}
STOP_EVENT: Dict[str, Optional[asyncio.Event]] = {"event": None}
