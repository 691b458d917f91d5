from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from . import api
from .auth import GROUP_TYPES, guard_admin, guard_read
from .config import logger
from .formatting import server_name
from .http import EntityNotFound, FetchError, make_session
from .reconcile import RenderError, TrackedClass
from .sinks import SinkResult, classify_error, rename_chat
from .state import EntityClass, SinkKind
from .storage import RegistryStore
from .trackers import TRACKED_CLASSES, outfit_entity_id


SERVER_LIST = ", ".join(api.SERVER_IDS)
TRACKER_TYPES = {
    "population": EntityClass.POPULATION_TRACKER,
    "territory": EntityClass.TERRITORY_TRACKER,
}
RENAME_PERMISSION_MSG = "❌ I need admin rights with <b>Change group info</b> to keep this chat's title updated."


def _registry(context: ContextTypes.DEFAULT_TYPE) -> RegistryStore:
    return context.bot_data["registry"]


def _parse_server(value: str) -> Optional[str]:
    value = value.strip().lower()
    return value if value in api.SERVER_IDS else None


async def start_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text(
        "🤖 <b>Auraxis Bot</b>\n\n"
        "<b>Live messages</b> (edited in place):\n"
        "/alert &lt;instance_id&gt; - Follow an alert until it ends\n"
        "/dashboard &lt;server&gt; - Server population and continents\n"
        "/outfitdashboard &lt;tag&gt; [platform] - Online outfit members\n\n"
        "<b>Tracker titles</b> (groups only, renames this chat):\n"
        "/tracker &lt;population|territory&gt; &lt;server&gt;\n"
        "/outfittracker &lt;tag&gt; [faction|plain] [platform]\n\n"
        "/tracking - List what this chat follows\n"
        "/untrack - Stop every tracker in this chat\n\n"
        f"Servers: <code>{SERVER_LIST}</code>\n"
        "Platforms: <code>pc</code>, <code>ps4us</code>, <code>ps4eu</code>",
        parse_mode="HTML",
    )


async def _fetch_and_render(tracked: TrackedClass, entity_id: str, snapshot: Any = None):
    now = datetime.now(timezone.utc)
    if snapshot is None:
        async with make_session() as session:
            snapshot = await tracked.fetch(session, entity_id)
    return snapshot, tracked.render(snapshot, now), now


async def _create_message_sink(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    tracked: TrackedClass,
    entity_id: str,
    snapshot: Any = None,
) -> None:
    """Post the current rendering and register the message for updates."""
    try:
        snapshot, rendering, now = await _fetch_and_render(tracked, entity_id, snapshot)
    except EntityNotFound:
        await update.message.reply_text(f"❌ <code>{entity_id}</code> not found.", parse_mode="HTML")
        return
    except (FetchError, RenderError) as e:
        await update.message.reply_text(f"❌ Could not load data: {e}")
        return

    sent = await update.message.reply_text(rendering.text, parse_mode="HTML")
    if tracked.is_terminal(snapshot, now):
        logger.info(f"{tracked.entity_class.value} {entity_id} already finished, not registering")
        return
    await _registry(context).insert_row(
        tracked.entity_class,
        entity_id,
        update.effective_chat.id,
        SinkKind.MESSAGE,
        message_id=sent.message_id,
    )


async def _create_channel_sink(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    tracked: TrackedClass,
    entity_id: str,
    variant: Optional[str] = None,
    snapshot: Any = None,
) -> None:
    """Rename this chat to the current rendering and register it for updates."""
    chat = update.effective_chat
    if chat.type not in GROUP_TYPES:
        await update.message.reply_text("❌ Trackers rename the chat they live in, so they only work in groups.")
        return

    try:
        _, rendering, _ = await _fetch_and_render(tracked, entity_id, snapshot)
    except EntityNotFound:
        await update.message.reply_text(f"❌ <code>{entity_id}</code> not found.", parse_mode="HTML")
        return
    except (FetchError, RenderError) as e:
        await update.message.reply_text(f"❌ Could not load data: {e}")
        return

    title = rendering.variants.get(variant, rendering.text) if variant else rendering.text
    try:
        await rename_chat(context.bot, chat.id, title)
    except TelegramError as e:
        if classify_error(e) == SinkResult.FORBIDDEN:
            await update.message.reply_text(RENAME_PERMISSION_MSG, parse_mode="HTML")
        else:
            await update.message.reply_text(f"❌ Could not rename this chat: {e.message}")
        return

    await _registry(context).insert_row(tracked.entity_class, entity_id, chat.id, SinkKind.CHANNEL, variant=variant)
    await update.message.reply_text(
        "✅ Tracker created. The chat title will update automatically every few minutes."
    )


async def alert_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await guard_admin(update, context):
        return
    if not context.args:
        await update.message.reply_text("Usage: /alert <instance_id>")
        return
    instance_id = context.args[0].strip()
    await _create_message_sink(update, context, TRACKED_CLASSES[EntityClass.ALERT], instance_id)


async def dashboard_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await guard_admin(update, context):
        return
    server = _parse_server(context.args[0]) if context.args else None
    if not server:
        await update.message.reply_text(f"Usage: /dashboard <server>\nServers: {SERVER_LIST}")
        return
    await _create_message_sink(update, context, TRACKED_CLASSES[EntityClass.SERVER_DASHBOARD], server)


async def _lookup_outfit(update: Update, tag: str, platform_arg: Optional[str]):
    try:
        platform = api.resolve_platform(platform_arg)
    except ValueError as e:
        await update.message.reply_text(f"❌ {e}")
        return None, None
    try:
        async with make_session() as session:
            outfit = await api.get_outfit_online(session, platform, tag=tag)
    except EntityNotFound:
        await update.message.reply_text(f"❌ Outfit <code>{tag}</code> not found.", parse_mode="HTML")
        return None, None
    except FetchError as e:
        await update.message.reply_text(f"❌ Could not look up outfit: {e}")
        return None, None
    return outfit_entity_id(platform, outfit["outfit_id"]), outfit


async def outfitdashboard_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await guard_admin(update, context):
        return
    if not context.args:
        await update.message.reply_text("Usage: /outfitdashboard <tag> [pc|ps4us|ps4eu]")
        return
    tag = context.args[0].strip()
    platform_arg = context.args[1] if len(context.args) > 1 else None
    entity_id, outfit = await _lookup_outfit(update, tag, platform_arg)
    if entity_id is None:
        return
    await _create_message_sink(update, context, TRACKED_CLASSES[EntityClass.OUTFIT_DASHBOARD], entity_id, snapshot=outfit)


async def tracker_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await guard_admin(update, context):
        return
    if len(context.args) < 2 or context.args[0].lower() not in TRACKER_TYPES or not _parse_server(context.args[1]):
        await update.message.reply_text(f"Usage: /tracker <population|territory> <server>\nServers: {SERVER_LIST}")
        return
    entity_class = TRACKER_TYPES[context.args[0].lower()]
    await _create_channel_sink(update, context, TRACKED_CLASSES[entity_class], _parse_server(context.args[1]))


async def outfittracker_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await guard_admin(update, context):
        return
    if not context.args:
        await update.message.reply_text("Usage: /outfittracker <tag> [faction|plain] [pc|ps4us|ps4eu]")
        return
    tag = context.args[0].strip()
    variant = "faction"
    platform_arg = None
    for arg in context.args[1:]:
        if arg.lower() in ("faction", "plain"):
            variant = arg.lower()
        else:
            platform_arg = arg
    entity_id, outfit = await _lookup_outfit(update, tag, platform_arg)
    if entity_id is None:
        return
    await _create_channel_sink(
        update, context, TRACKED_CLASSES[EntityClass.OUTFIT_TRACKER], entity_id, variant=variant, snapshot=outfit
    )


def _describe_row(row) -> str:
    entity = row.entity_id
    if entity in api.SERVER_IDS:
        entity = server_name(api.SERVER_IDS[entity])
    flag = " ⚠️" if row.error else ""
    return f"• {row.entity_class.value.replace('_', ' ')}: <code>{entity}</code>{flag}"


async def tracking_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await guard_read(update, context):
        return
    rows = await _registry(context).list_chat_rows(update.effective_chat.id)
    if not rows:
        await update.message.reply_text("Nothing is tracked in this chat.")
        return
    lines = ["📡 <b>Tracked in this chat</b>", ""] + [_describe_row(row) for row in rows]
    await update.message.reply_text("\n".join(lines), parse_mode="HTML")


async def untrack_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not await guard_admin(update, context):
        return
    deleted = await _registry(context).delete_chat_rows(update.effective_chat.id)
    if deleted:
        await update.message.reply_text(f"✅ Stopped {deleted} tracker(s) in this chat.")
    else:
        await update.message.reply_text("Nothing was tracked in this chat.")
