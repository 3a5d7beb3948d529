from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _load_dotenv() -> None:
    if os.getenv("DMSCOUT_SKIP_DOTENV") == "1":
        return

    env_path = Path(__file__).resolve().parents[2] / ".env"
    if not env_path.exists():
        return

    from dotenv import load_dotenv

    load_dotenv(env_path, override=True)


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_non_negative_int(value: str | None, default: int = 0) -> int:
    if value is None:
        return default
    raw = value.strip()
    if not raw:
        return default
    try:
        return max(0, int(raw))
    except ValueError:
        return default


def _parse_non_negative_float(value: str | None, default: float = 0.0) -> float:
    if value is None:
        return default
    raw = value.strip()
    if not raw:
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        return default


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(frozen=True)
class Settings:
    env: str
    app_name: str
    cors_origins: list[str]
    database_url: str | None
    sync_processing: bool
    worker_pool_size: int
    extraction_concurrency: int
    progress_flush_every: int
    fetch_timeout_seconds: float
    fetch_user_agent: str
    throttle_conservative_seconds: float
    throttle_moderate_seconds: float
    throttle_aggressive_seconds: float
    throttle_jitter: float
    delivery_backend: str
    delivery_webhook_url: str | None
    delivery_timeout_seconds: float
    default_extract_quota: int
    default_dm_quota: int

    def throttle_delays(self) -> dict[str, float]:
        return {
            "conservative": self.throttle_conservative_seconds,
            "moderate": self.throttle_moderate_seconds,
            "aggressive": self.throttle_aggressive_seconds,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    _load_dotenv()

    env = os.getenv("DMSCOUT_ENV", "development")
    cors = os.getenv("DMSCOUT_CORS_ORIGINS", "http://localhost:5173")
    user_agent = (
        os.getenv("DMSCOUT_FETCH_USER_AGENT", "").strip()
        or "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/124.0 Safari/537.36"
    )

    return Settings(
        env=env,
        app_name="DMScout API",
        cors_origins=_split_csv(cors),
        database_url=os.getenv("DATABASE_URL") or None,
        sync_processing=_parse_bool(os.getenv("DMSCOUT_SYNC_PROCESSING"), default=False),
        worker_pool_size=_parse_non_negative_int(os.getenv("DMSCOUT_WORKER_POOL_SIZE"), default=4) or 4,
        extraction_concurrency=_parse_non_negative_int(os.getenv("DMSCOUT_EXTRACTION_CONCURRENCY"), default=4) or 1,
        progress_flush_every=_parse_non_negative_int(os.getenv("DMSCOUT_PROGRESS_FLUSH_EVERY"), default=5) or 5,
        fetch_timeout_seconds=_parse_non_negative_float(os.getenv("DMSCOUT_FETCH_TIMEOUT_SECONDS"), default=10.0)
        or 10.0,
        fetch_user_agent=user_agent,
        throttle_conservative_seconds=_parse_non_negative_float(
            os.getenv("DMSCOUT_THROTTLE_CONSERVATIVE_SECONDS"), default=8.0
        ),
        throttle_moderate_seconds=_parse_non_negative_float(os.getenv("DMSCOUT_THROTTLE_MODERATE_SECONDS"), default=4.0),
        throttle_aggressive_seconds=_parse_non_negative_float(
            os.getenv("DMSCOUT_THROTTLE_AGGRESSIVE_SECONDS"), default=2.0
        ),
        throttle_jitter=_parse_non_negative_float(os.getenv("DMSCOUT_THROTTLE_JITTER"), default=0.5),
        delivery_backend=os.getenv("DMSCOUT_DELIVERY_BACKEND", "mock").strip().lower() or "mock",
        delivery_webhook_url=os.getenv("DMSCOUT_DELIVERY_WEBHOOK_URL") or None,
        delivery_timeout_seconds=_parse_non_negative_float(
            os.getenv("DMSCOUT_DELIVERY_TIMEOUT_SECONDS"), default=15.0
        )
        or 15.0,
        default_extract_quota=_parse_non_negative_int(os.getenv("DMSCOUT_DEFAULT_EXTRACT_QUOTA"), default=150),
        default_dm_quota=_parse_non_negative_int(os.getenv("DMSCOUT_DEFAULT_DM_QUOTA"), default=10),
    )
