from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else v


@dataclass
class Settings:
    # History
    history_max_depth: int = 50

    # Icon fetching
    icon_fetch_jobs: int = 6
    icon_fetch_timeout_s: float = 10.0
    icon_fetch_user_agent: str = "marktree/0.3 (+https://example.invalid)"
    icon_discover_page_link: bool = True

    # Tree defaults
    default_root_title: str = "Bookmarks"
    import_wrapper_title: str = "Imported"

    # Notifications
    toast_ttl_s: float = 3.0

    # Logging / UX
    log_level: str = "INFO"
    no_color: bool = False

    @staticmethod
    def from_env() -> "Settings":
        s = Settings()
        s.history_max_depth = _env_int("MARKTREE_HISTORY_MAX_DEPTH", s.history_max_depth)

        s.icon_fetch_jobs = _env_int("MARKTREE_ICON_FETCH_JOBS", s.icon_fetch_jobs)
        s.icon_fetch_timeout_s = _env_float("MARKTREE_ICON_FETCH_TIMEOUT_S", s.icon_fetch_timeout_s)
        s.icon_fetch_user_agent = _env_str("MARKTREE_ICON_FETCH_UA", s.icon_fetch_user_agent)
        s.icon_discover_page_link = _env_bool("MARKTREE_ICON_DISCOVER_PAGE_LINK", s.icon_discover_page_link)

        s.default_root_title = _env_str("MARKTREE_DEFAULT_ROOT_TITLE", s.default_root_title)
        s.import_wrapper_title = _env_str("MARKTREE_IMPORT_WRAPPER_TITLE", s.import_wrapper_title)

        s.toast_ttl_s = _env_float("MARKTREE_TOAST_TTL_S", s.toast_ttl_s)

        s.log_level = _env_str("MARKTREE_LOG_LEVEL", s.log_level)
        s.no_color = _env_bool("MARKTREE_NO_COLOR", s.no_color)
        return s

    @staticmethod
    def from_file(path: Path) -> "Settings":
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        s = Settings.from_env()
        for k, v in data.items():
            if hasattr(s, k):
                setattr(s, k, v)
        return s


def load_settings(config_path: Optional[str]) -> Settings:
    if config_path:
        return Settings.from_file(Path(config_path))
    return Settings.from_env()
