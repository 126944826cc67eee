"""Service configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class AppSettings:
    """Resolved configuration for the navigation/triage service."""

    log_level: str = "INFO"
    nav_config_file: Optional[Path] = None
    default_section: str = "home"
    badge_cap: int = 99
    max_sessions: int = 500
    host: str = "127.0.0.1"
    port: int = 8000


def _get_int_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer; got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Return the active settings derived from the environment."""

    load_dotenv()
    log_level = (
        os.getenv("CLINICNAV_LOG_LEVEL") or os.getenv("LOG_LEVEL") or "INFO"
    ).upper()
    config_file = os.getenv("CLINICNAV_NAV_CONFIG_FILE")
    nav_config_file = Path(config_file).expanduser() if config_file else None
    default_section = os.getenv("CLINICNAV_DEFAULT_SECTION") or "home"

    badge_cap = _get_int_env("CLINICNAV_BADGE_CAP")
    max_sessions = _get_int_env("CLINICNAV_MAX_SESSIONS")
    port = _get_int_env("CLINICNAV_PORT")

    return AppSettings(
        log_level=log_level,
        nav_config_file=nav_config_file,
        default_section=default_section,
        badge_cap=max(1, badge_cap) if badge_cap is not None else 99,
        max_sessions=max(1, max_sessions) if max_sessions is not None else 500,
        host=os.getenv("CLINICNAV_HOST") or "127.0.0.1",
        port=port if port is not None else 8000,
    )


def reset_settings_cache() -> None:
    get_settings.cache_clear()
