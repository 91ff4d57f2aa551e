import os

from dotenv import load_dotenv

load_dotenv(os.getenv("ENV_FILE"), override=True)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# General
PRODUCT = os.getenv("PRODUCT", "lessonlib")
VERSION = os.environ.get("VERSION", "0")
ENV = os.getenv("ENV", "dev")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")

BASE_PATH = os.path.dirname(os.path.realpath(__file__))

# Library sources
LIBRARY_SOURCES_FILE = os.getenv("LIBRARY_SOURCES_FILE", "") or None

# Prepared-lesson cache (defaultTTL in seconds, cleanupInterval in minutes)
CACHE_MAX_SIZE = int(os.getenv("CACHE_MAX_SIZE", "100"))
CACHE_DEFAULT_TTL = float(os.getenv("CACHE_DEFAULT_TTL", "3600"))
CACHE_CLEANUP_INTERVAL = float(os.getenv("CACHE_CLEANUP_INTERVAL", "5"))
CACHE_PERSIST_TO_DISK = _env_bool("CACHE_PERSIST_TO_DISK", False)
CACHE_COMPRESSION_ENABLED = _env_bool("CACHE_COMPRESSION_ENABLED", False)
CACHE_DIR = os.getenv(
    "CACHE_DIR", os.path.join(os.path.dirname(BASE_PATH), "data", "cache")
)

# Remote sync
SYNC_TIMEOUT_SECONDS = float(os.getenv("SYNC_TIMEOUT_SECONDS", "30"))
SYNC_MAX_RETRIES = int(os.getenv("SYNC_MAX_RETRIES", "3"))
SYNC_RETRY_BASE_DELAY = float(os.getenv("SYNC_RETRY_BASE_DELAY", "0.5"))
