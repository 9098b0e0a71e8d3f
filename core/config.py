import os
import re
from dotenv import load_dotenv
from dataclasses import dataclass

load_dotenv()

_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([smhd]?)$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def _resolve_db_path(raw_path: str) -> str:
    candidate = (raw_path or "").strip() or "./grind_review.db"
    candidate = os.path.expanduser(candidate)
    if os.path.isabs(candidate):
        return os.path.abspath(candidate)
    return os.path.abspath(os.path.join(_PROJECT_ROOT, candidate))


def _join_webhook_url(base_url: str, path: str) -> str:
    clean_base = (base_url or "").strip().rstrip("/")
    clean_path = (path or "").strip()
    if not clean_base:
        return ""
    if not clean_path.startswith("/"):
        clean_path = "/" + clean_path
    return clean_base + clean_path


def parse_duration_seconds(raw: str, default: float) -> float:
    """Accepts "90", "90s", "15m", "24h" or "7d"; anything else yields the default."""
    match = _DURATION_RE.match(str(raw or "").strip().lower())
    if not match:
        return default
    return float(match.group(1)) * _DURATION_UNITS[match.group(2)]


def parse_review_time(raw: str, default: tuple[int, int] = (8, 0)) -> tuple[int, int]:
    try:
        hour_str, minute_str = str(raw).strip().split(":", 1)
        hour = int(hour_str)
        minute = int(minute_str)
        if 0 <= hour <= 23 and 0 <= minute <= 59:
            return hour, minute
    except ValueError:
        pass
    return default


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class Config:
    bot_token: str = os.getenv("BOT_TOKEN", "")
    admin_id: int = _int_env("ADMIN_ID", 0)
    log_level: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    db_backend: str = os.getenv("DB_BACKEND", "sqlite").strip().lower()
    database_url: str = os.getenv("DATABASE_URL", "").strip()
    db_pool_min_size: int = _int_env("DB_POOL_MIN_SIZE", 1)
    db_pool_max_size: int = _int_env("DB_POOL_MAX_SIZE", 10)
    db_path: str = _resolve_db_path(os.getenv("DB_PATH", "./grind_review.db"))

    # Review reminders
    review_time: str = os.getenv("REVIEW_TIME", "08:00").strip()
    review_timezone: str = os.getenv("REVIEW_TIMEZONE", "").strip()
    review_chat_id: str = os.getenv("REVIEW_CHAT_ID", "").strip()
    review_lookback_seconds: float = parse_duration_seconds(os.getenv("REVIEW_LOOKBACK", "24h"), 86400.0)
    review_retry_attempts: int = max(0, _int_env("REVIEW_RETRY_ATTEMPTS", 3))
    review_retry_delay_seconds: float = parse_duration_seconds(os.getenv("REVIEW_RETRY_DELAY", "2s"), 2.0)
    review_max_items: int = max(0, _int_env("REVIEW_MAX_ITEMS", 20))

    delivery_mode: str = os.getenv("DELIVERY_MODE", "polling").strip().lower()
    webhook_host: str = os.getenv("WEBHOOK_HOST", "0.0.0.0").strip()
    webhook_port: int = _int_env("PORT", _int_env("WEBHOOK_PORT", 8080))
    webhook_path: str = os.getenv("WEBHOOK_PATH", "/telegram/webhook").strip()
    webhook_secret_token: str = os.getenv("WEBHOOK_SECRET_TOKEN", "").strip()
    webhook_url: str = (
        os.getenv("WEBHOOK_URL", "").strip()
        or _join_webhook_url(os.getenv("WEBHOOK_BASE_URL", "").strip(), os.getenv("WEBHOOK_PATH", "/telegram/webhook").strip())
    )

    # UI Constants
    list_page_size: int = 25
    instance_lock_path: str = os.path.join(_PROJECT_ROOT, "data", "bot.instance.lock")

# Global Instance
settings = Config()
