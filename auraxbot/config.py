import os
import logging
from functools import wraps

from cachetools import TTLCache
from dotenv import load_dotenv


# Load env early
load_dotenv()

# Logging configuration
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, log_level, logging.INFO),
)
logger = logging.getLogger(__name__)

# Reduce noisy libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
logging.getLogger("telegram.ext.ExtBot").setLevel(logging.WARNING)
logging.getLogger("telegram.ext.Updater").setLevel(logging.WARNING)
logging.getLogger("telegram.ext.Application").setLevel(logging.WARNING)
logging.getLogger("telegram.bot").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)


class Config:
    """Application configuration read from the environment."""

    # Telegram Bot Configuration
    BOT_TOKEN: str | None = os.getenv("BOT_TOKEN")
    ALLOWED_USER_ID: int = int(os.getenv("ALLOWED_USER_ID", "0"))

    # Census service id, sent with every Census request
    SERVICE_ID: str = os.getenv("SERVICE_ID", "example").strip()

    # Remote APIs
    CENSUS_API_URL: str = os.getenv("CENSUS_API_URL", "https://census.daybreakgames.com").strip().rstrip("/")
    FISU_API_URL: str = os.getenv("FISU_API_URL", "https://ps2.fisu.pw").strip().rstrip("/")
    PS2ALERTS_API_URL: str = os.getenv("PS2ALERTS_API_URL", "https://api.ps2alerts.com").strip().rstrip("/")

    # Registry
    DATABASE_PATH: str = os.getenv("DATABASE_PATH", "auraxbot.db")

    # Job intervals
    ALERT_POLL_SECS: int = int(os.getenv("ALERT_POLL_SECS", "60"))
    DASHBOARD_POLL_SECS: int = int(os.getenv("DASHBOARD_POLL_SECS", "300"))
    TRACKER_POLL_SECS: int = int(os.getenv("TRACKER_POLL_SECS", "600"))

    # Fetch gateway
    FETCH_RETRIES: int = int(os.getenv("FETCH_RETRIES", "2"))  # attempts beyond the first
    REQUEST_TIMEOUT: int = int(os.getenv("REQUEST_TIMEOUT", "25"))

    ALERT_GRACE_MINUTES: int = int(os.getenv("ALERT_GRACE_MINUTES", "5"))
    API_CACHE_TTL: int = int(os.getenv("API_CACHE_TTL", "86400"))  # 24 hours default

    @classmethod
    def validate_config(cls) -> None:
        if not cls.BOT_TOKEN:
            raise ValueError("BOT_TOKEN environment variable is required")
        if cls.ALLOWED_USER_ID == 0:
            logger.warning("ALLOWED_USER_ID not configured - admin commands only work in groups")
        if cls.SERVICE_ID == "example":
            logger.warning("SERVICE_ID not configured - using the rate limited public 'example' service id")


config = Config()
BOT_TOKEN = config.BOT_TOKEN
ALLOWED_USER_ID = config.ALLOWED_USER_ID
SERVICE_ID = config.SERVICE_ID
CENSUS_API_URL = config.CENSUS_API_URL
FISU_API_URL = config.FISU_API_URL
PS2ALERTS_API_URL = config.PS2ALERTS_API_URL
DATABASE_PATH = config.DATABASE_PATH

ALERT_POLL_SECS = config.ALERT_POLL_SECS
DASHBOARD_POLL_SECS = config.DASHBOARD_POLL_SECS
TRACKER_POLL_SECS = config.TRACKER_POLL_SECS

FETCH_RETRIES = config.FETCH_RETRIES
REQUEST_TIMEOUT = config.REQUEST_TIMEOUT
ALERT_GRACE_MINUTES = config.ALERT_GRACE_MINUTES


# Static lookups only (event names and the like); live state is never cached
api_cache = TTLCache(maxsize=64, ttl=config.API_CACHE_TTL)


def cached_api_call(cache_key_func):
    """Cache the result of an API coroutine under the key built by ``cache_key_func``."""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            key = cache_key_func(*args, **kwargs)

            if key in api_cache:
                logger.debug(f"API cache hit for: {key}")
                return api_cache[key]

            logger.debug(f"API cache miss, calling API for: {key}")
            result = await func(*args, **kwargs)

            api_cache[key] = result
            logger.debug(f"Cached API result for: {key}")
            return result
        return wrapper
    return decorator
