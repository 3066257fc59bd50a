from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Sequence

from uema_data.utils.logging import get_logger

log = get_logger(__name__)

PLACEHOLDER_URL = "https://placeholder.supabase.co"
PLACEHOLDER_KEY = "placeholder-key"
DEFAULT_CACHE_DIR = Path("assets/data/cache")

_URL_ENV_NAMES = ("SUPABASE_URL", "EXPO_PUBLIC_SUPABASE_URL", "VITE_SUPABASE_URL")
_KEY_ENV_NAMES = ("SUPABASE_ANON_KEY", "EXPO_PUBLIC_SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY")


@dataclass(frozen=True)
class Settings:
    supabase_url: str = ""
    supabase_key: str = ""
    cache_dir: Path = DEFAULT_CACHE_DIR
    remote_timeout_seconds: float = 15.0
    remote_max_attempts: int = 3
    remote_backoff_min_seconds: float = 0.5
    remote_backoff_max_seconds: float = 4.0

    @property
    def remote_configured(self) -> bool:
        url = self.supabase_url.strip()
        key = self.supabase_key.strip()
        if not url or not key:
            return False
        return url.rstrip("/") != PLACEHOLDER_URL and key != PLACEHOLDER_KEY

    @property
    def rest_base_url(self) -> str:
        return f"{self.supabase_url.strip().rstrip('/')}/rest/v1"

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **changes)


def _first_env(env: Mapping[str, str], names: Sequence[str]) -> str:
    for name in names:
        value = (env.get(name) or "").strip()
        if value:
            return value
    return ""


def _get_float_env(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        log.warning("settings_invalid_float_env", name=name, value=value)
        return default
    return parsed if parsed >= 0 else default


def _get_int_env(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        log.warning("settings_invalid_int_env", name=name, value=value)
        return default
    return parsed if parsed > 0 else default


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    source = os.environ if env is None else env
    cache_dir = (source.get("UEMA_CACHE_DIR") or "").strip()
    backoff_min = _get_float_env(source, "UEMA_REMOTE_BACKOFF_MIN_SECONDS", 0.5)
    backoff_max = _get_float_env(source, "UEMA_REMOTE_BACKOFF_MAX_SECONDS", 4.0)
    return Settings(
        supabase_url=_first_env(source, _URL_ENV_NAMES),
        supabase_key=_first_env(source, _KEY_ENV_NAMES),
        cache_dir=Path(cache_dir) if cache_dir else DEFAULT_CACHE_DIR,
        remote_timeout_seconds=_get_float_env(source, "UEMA_REMOTE_TIMEOUT_SECONDS", 15.0) or 15.0,
        remote_max_attempts=_get_int_env(source, "UEMA_REMOTE_MAX_ATTEMPTS", 3),
        remote_backoff_min_seconds=backoff_min,
        remote_backoff_max_seconds=max(backoff_min, backoff_max),
    )
