from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import Tuple

from rich.console import Console
from rich.logging import RichHandler

# Per-request lines from the HTTP stack only matter when debugging icon fetches.
_HTTP_LOGGERS = ("httpx", "httpcore")
_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    no_color: bool = False

    @classmethod
    def from_settings(cls, settings) -> "LogConfig":
        return cls(level=settings.log_level, no_color=settings.no_color)


def resolve_level(name: str) -> int:
    """Map "debug", "WARN", "10", ... to a logging level; unknown names mean INFO."""
    name = (name or "").strip().upper()
    if name.isdigit():
        return int(name)
    level = logging.getLevelName(_LEVEL_ALIASES.get(name, name))
    return level if isinstance(level, int) else logging.INFO


def setup_logging(cfg: LogConfig) -> None:
    """Install the marktree handler on the root logger, replacing one set up earlier.

    Handlers that other code put on the root logger are left alone.
    """
    level = resolve_level(cfg.level)
    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        if getattr(h, "_marktree", False):
            root.removeHandler(h)

    handler, fmt = _make_handler(cfg)
    handler._marktree = True  # type: ignore[attr-defined]
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    root.addHandler(handler)

    http_level = level if level <= logging.DEBUG else logging.WARNING
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)


def _make_handler(cfg: LogConfig) -> Tuple[logging.Handler, str]:
    colored = not cfg.no_color and os.getenv("NO_COLOR") is None and sys.stderr.isatty()
    if colored:
        console = Console(stderr=True)
        return RichHandler(console=console, rich_tracebacks=True, show_time=False, show_path=False), "%(message)s"
    return logging.StreamHandler(), _PLAIN_FORMAT


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
