import math
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]


class ConfigurationError(RuntimeError):
    pass


def load_env() -> None:
    # .env.local first so it wins over .env; real environment wins over both.
    load_dotenv(REPO_ROOT / ".env.local")
    load_dotenv(REPO_ROOT / ".env")


def get_str(name: str, default: str | None = None) -> str | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


def get_int(name: str, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_float(name: str, default: float | None = None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if math.isfinite(value) else default


def get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def first_env(*names: str) -> str | None:
    for name in names:
        value = get_str(name)
        if value:
            return value
    return None


def require_env(name: str, hint: str | None = None) -> str:
    value = get_str(name)
    if not value:
        msg = f"Missing {name} in environment variables."
        if hint:
            msg = f"{msg} {hint}"
        raise ConfigurationError(msg)
    return value


@dataclass(frozen=True)
class SyncSettings:
    cooldown_sec: float = 30.0
    max_rate_limit_retries: int = 0
    transient_retries: int = 0
    backoff_cap_sec: float = 30.0
    idle_pause_sec: float = 5.0
    upsert_batch: int = 50
    connect_timeout_sec: float = 10.0
    read_timeout_sec: float = 30.0
    table: str = "characters"
    anilist_per_page: int = 50
    rawg_ordering: str = "-rating"

    @classmethod
    def from_env(cls) -> "SyncSettings":
        return cls(
            cooldown_sec=max(get_float("SYNC_RATE_LIMIT_COOLDOWN_SEC", 30.0), 0.0),
            max_rate_limit_retries=max(get_int("SYNC_MAX_RATE_LIMIT_RETRIES", 0), 0),
            transient_retries=max(get_int("SYNC_TRANSIENT_RETRIES", 0), 0),
            backoff_cap_sec=max(get_float("SYNC_BACKOFF_CAP_SEC", 30.0), 0.0),
            idle_pause_sec=max(get_float("SYNC_IDLE_PAUSE_SEC", 5.0), 0.0),
            # zero-sized batches or pages would never make progress
            upsert_batch=max(get_int("SYNC_UPSERT_BATCH", 50), 1),
            connect_timeout_sec=get_float("SYNC_CONNECT_TIMEOUT_SEC", 10.0),
            read_timeout_sec=get_float("SYNC_TIMEOUT_SEC", 30.0),
            table=get_str("SYNC_TABLE", "characters"),
            anilist_per_page=max(get_int("ANILIST_PER_PAGE", 50), 1),
            rawg_ordering=get_str("RAWG_ORDERING", "-rating"),
        )
