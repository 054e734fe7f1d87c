import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from rentpulse.adapters.clock import SystemClock
from rentpulse.adapters.sqlite_db import SQLiteCounterStore, SQLiteListingDirectory
from rentpulse.api.auth_utils import SECRET_KEY, decode_access_token
from rentpulse.components.aggregation import AggregationConfig
from rentpulse.components.metrics import MetricsConfig
from rentpulse.core.ports.db import CounterStorePort, ListingDirectoryPort
from rentpulse.core.ports.time import TimePort
from rentpulse.rules.loader import (
    aggregation_config_from_rules,
    load_rules,
    metrics_config_from_rules,
)
from rentpulse.rules.models import Rules


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("RENTPULSE_DATA_DIR", "./data"))
        self.db_path = self.data_dir / "rentpulse.db"
        self.migrations_dir = self.base_dir / "migrations"
        self.rules_path = Path(
            os.environ.get("RENTPULSE_RULES_PATH", str(self.base_dir / "rules.yaml"))
        )
        self.secret_key = os.environ.get("RENTPULSE_SECRET_KEY", SECRET_KEY)


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return load_rules(settings.rules_path)


def get_aggregation_config(rules: Rules = Depends(get_rules)) -> AggregationConfig:
    return aggregation_config_from_rules(rules)


def get_metrics_config(rules: Rules = Depends(get_rules)) -> MetricsConfig:
    return metrics_config_from_rules(rules)


# --- Stores ---
def get_counter_store(
    settings: Settings = Depends(get_settings),
    rules: Rules = Depends(get_rules),
) -> CounterStorePort:
    return SQLiteCounterStore(
        str(settings.db_path), busy_timeout=rules.storage.busy_timeout_seconds
    )


def get_listing_directory(settings: Settings = Depends(get_settings)) -> ListingDirectoryPort:
    return SQLiteListingDirectory(str(settings.db_path))


# Time adapter for deterministic time operations
_clock_instance: SystemClock | None = None


def get_clock() -> TimePort:
    """Get clock singleton."""
    global _clock_instance
    if _clock_instance is None:
        _clock_instance = SystemClock()
    return _clock_instance


# --- Auth ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def get_optional_caller(
    request: Request,
    token: Annotated[str | None, Depends(oauth2_scheme)],
    settings: Settings = Depends(get_settings),
) -> str | None:
    """
    Caller id from the bearer token, or None.

    Rejection of anonymous callers is left to the component so that its
    error ordering is preserved.
    """
    # Cookie first (HttpOnly), then the Authorization header
    cookie_token = request.cookies.get("access_token")
    if cookie_token and cookie_token.startswith("Bearer "):
        token = cookie_token.split(" ", 1)[1]

    if not token:
        return None

    payload = decode_access_token(token, settings.secret_key)
    if not payload:
        return None

    caller_id = payload.get("sub")
    if not isinstance(caller_id, str) or not caller_id:
        return None
    return caller_id
