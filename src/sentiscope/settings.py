"""Static configuration for sentiscope.

Non-secret knobs (server, lifecycle timing, backfill pacing, logging) live in
an optional config.json at the project root. Secrets come from the
environment via python-dotenv. Bot tokens and guild ids are neither; they are
managed through the settings API and stored in the database.
"""

import json
import os

from dotenv import load_dotenv

# Runtime files (config.json, .env, database, locks, sessions) live in the
# directory sentiscope is run from, or in SENTISCOPE_HOME when set.
PROJECT_ROOT = os.path.abspath(os.getenv("SENTISCOPE_HOME") or os.getcwd())

CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")

load_dotenv(os.path.join(PROJECT_ROOT, ".env"))


def _load_json_config() -> dict:
    """Load config.json; every section is optional and defaults apply."""

    if not os.path.exists(CONFIG_PATH):
        return {}

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _project_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database.
DB_PATH = _project_path(os.getenv("SENTISCOPE_DB_PATH", "sentiscope.db"))

# HTTP server for the dashboard API.
_server = _CONFIG.get("server", {})
SERVER_HOST = _server.get("host", "127.0.0.1")
SERVER_PORT = int(_server.get("port", 5000))

# Connection lifecycle timing. The Telegram lock keeps a second process from
# polling with the same token.
_lifecycle = _CONFIG.get("lifecycle", {})
CONNECT_TIMEOUT_SECONDS = float(_lifecycle.get("connect_timeout_seconds", 10))
SETTLE_DELAY_SECONDS = float(_lifecycle.get("settle_delay_seconds", 1))
TELEGRAM_LOCK_PATH = _project_path(_lifecycle.get("telegram_lock_path", "tmp/telegram-bot.lock"))
LOCK_STALE_SECONDS = float(_lifecycle.get("lock_stale_seconds", 120))

# Historical fetch paging and pacing.
_backfill = _CONFIG.get("backfill", {})
BACKFILL_PAGE_SIZE = int(_backfill.get("page_size", 100))
BACKFILL_PAGE_DELAY_SECONDS = float(_backfill.get("page_delay_seconds", 1))
BACKFILL_MESSAGE_DELAY_SECONDS = float(_backfill.get("message_delay_seconds", 1))
BACKFILL_LONG_DELAY_SECONDS = float(_backfill.get("long_delay_seconds", 3))
BACKFILL_SHORT_PAUSE_EVERY = int(_backfill.get("short_pause_every", 5))
BACKFILL_LONG_PAUSE_EVERY = int(_backfill.get("long_pause_every", 20))
BACKFILL_DEFAULT_MAX_MESSAGES = int(_backfill.get("default_max_messages", 1000))

# Secrets.
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
DASHBOARD_USERNAME = os.getenv("DASHBOARD_USERNAME", "admin")
DASHBOARD_PASSWORD = os.getenv("DASHBOARD_PASSWORD")

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
