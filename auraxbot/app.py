from __future__ import annotations

from telegram import BotCommand, BotCommandScopeAllPrivateChats
from telegram.ext import Application, CommandHandler
from telegram.request import HTTPXRequest

from .config import BOT_TOKEN, DATABASE_PATH, Config, logger
from .scheduler import start_jobs, stop_jobs
from .storage import RegistryStore
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


async def startup_health_check():
    """Perform health check on bot startup"""
    from .api import get_metagame_events
    from .http import FetchError, UpstreamError, make_session

    logger.info("🏥 Running startup health check...")

    try:
        async with make_session() as session:
            events = await get_metagame_events(session)
        logger.info(f"✅ Census API reachable, {len(events)} metagame events known")
        return True
    except FetchError as e:
        error_msg = str(e)
        code = e.code if isinstance(e, UpstreamError) else None
        if code == "service_unavailable":
            logger.error("❌ Census API is down for maintenance, jobs will keep retrying")
        elif code == "HTTP 403" or "service id" in error_msg.lower():
            logger.error("❌ Census rejected the service id - check SERVICE_ID in your .env file")
        else:
            logger.error(f"❌ Census API health check failed: {error_msg}")
        return False


def main():
    try:
        Config.validate_config()
    except ValueError as e:
        raise SystemExit(f"❌ {e}. Check your .env file.")

    store = RegistryStore(DATABASE_PATH).open()
    logger.info(f"📂 Registry opened at {DATABASE_PATH}")

    # Configure request with longer timeout to prevent startup failures
    request = HTTPXRequest(
        connection_pool_size=8,
        connect_timeout=30.0,
        read_timeout=30.0,
        write_timeout=30.0,
        pool_timeout=30.0,
    )

    app = Application.builder().token(BOT_TOKEN).request(request).build()
    app.bot_data["registry"] = store

    private_commands = [
        BotCommand("start", "Show help and available commands"),
        BotCommand("alert", "Follow an alert in a live message"),
        BotCommand("dashboard", "Live server population and continents"),
        BotCommand("outfitdashboard", "Live list of online outfit members"),
        BotCommand("tracking", "List what this chat follows"),
        BotCommand("untrack", "Stop every tracker in this chat"),
    ]

    group_commands = private_commands[:4] + [
        BotCommand("tracker", "Rename this chat with server population or territory"),
        BotCommand("outfittracker", "Rename this chat with an outfit's online count"),
    ] + private_commands[4:]

    async def post_init(application: Application) -> None:
        try:
            logger.info("🔧 Setting up bot commands...")
            await application.bot.set_my_commands(group_commands)
            await application.bot.set_my_commands(private_commands, scope=BotCommandScopeAllPrivateChats())
            logger.info("✅ Bot commands configured successfully")
        except Exception as e:
            logger.error(f"❌ Failed to set bot commands: {e}")
            logger.warning("⚠️ Bot will continue but commands may not be visible in Telegram")

        await startup_health_check()
        start_jobs(store, application.bot)

    async def post_shutdown(application: Application) -> None:
        await stop_jobs()
        store.close()
        logger.info("📂 Registry closed")

    app.post_init = post_init
    app.post_shutdown = post_shutdown

    app.add_handler(CommandHandler("start", start_cmd))
    app.add_handler(CommandHandler("alert", alert_cmd))
    app.add_handler(CommandHandler("dashboard", dashboard_cmd))
    app.add_handler(CommandHandler("outfitdashboard", outfitdashboard_cmd))
    app.add_handler(CommandHandler("tracker", tracker_cmd))
    app.add_handler(CommandHandler("outfittracker", outfittracker_cmd))
    app.add_handler(CommandHandler("tracking", tracking_cmd))
    app.add_handler(CommandHandler("untrack", untrack_cmd))

    app.run_polling(drop_pending_updates=True)
