#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Colored console logging for pipeline runs.

Log levels are colored only when stderr is a terminal:
- DEBUG: Cyan
- INFO: Green
- WARNING: Yellow (abstaining price sources, skipped valuations)
- ERROR: Red
- CRITICAL: Bold Red
"""
from __future__ import annotations

import logging
import sys
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s:%(module)s.%(funcName)s:%(lineno)d] - %(message)s'
DEFAULT_DATEFMT = '%Y-%m-%d %H:%M:%S'
VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ColoredFormatter(logging.Formatter):
    """Formatter that wraps the level name in ANSI color codes."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[1;31m',
    }
    RESET = '\033[0m'

    def __init__(self, fmt: str = DEFAULT_FORMAT, datefmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if not (self.use_colors and record.levelname in self.COLORS):
            return super().format(record)
        orig_levelname = record.levelname
        record.levelname = f"{self.COLORS[orig_levelname]}{orig_levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = orig_levelname


def level_from_name(name: str) -> int:
    """Map "debug"/"INFO"/... to a logging level, raising ValueError for unknown names."""
    upper = (name or "").strip().upper()
    if upper not in VALID_LEVELS:
        raise ValueError(f"logging level must be one of: {list(VALID_LEVELS)}")
    return getattr(logging, upper)


def setup_colored_logging(level: int = logging.INFO, fmt: str = DEFAULT_FORMAT, datefmt: Optional[str] = DEFAULT_DATEFMT) -> None:
    """
    Configure the root logger with a single colored stderr handler.

    Args:
        level: Logging level (e.g., logging.INFO, logging.DEBUG)
        fmt: Format string for log messages
        datefmt: Format string for timestamps
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredFormatter(fmt=fmt, datefmt=datefmt))

    root.setLevel(level)
    root.addHandler(console_handler)
    # urllib3 logs every retry at DEBUG; keep it at WARNING unless we are debugging
    logging.getLogger("urllib3").setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)
