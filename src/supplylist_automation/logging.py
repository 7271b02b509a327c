"""Per-module loggers under the ``supplylist.`` namespace.

Each logger writes to stderr and, when LOG_FILE is set, also appends to that file.
LOG_LEVEL is read once per logger, the first time it is requested.
"""

import logging
import os
from typing import List, Optional, Tuple, Union

NAMESPACE = "supplylist"
FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


def resolve_level(value: Union[str, int, None]) -> int:
    """Map "debug", "WARN", 10 ... to a logging level; anything unknown is INFO."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if not isinstance(value, str) or not value.strip():
        return logging.INFO
    name = value.strip().upper()
    level = logging.getLevelName(_ALIASES.get(name, name))
    return level if isinstance(level, int) else logging.INFO


def _build_handlers(level: int) -> Tuple[List[logging.Handler], Optional[str]]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    problem = None
    path = os.environ.get("LOG_FILE")
    if path:
        try:
            handlers.append(logging.FileHandler(path, encoding="utf-8"))
        except OSError as e:
            problem = f"LOG_FILE {path!r} could not be opened ({e}); logging to stderr only"

    formatter = logging.Formatter(fmt=FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers, problem


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(f"{NAMESPACE}.{name}")
    if logger.handlers:
        return logger

    level = resolve_level(os.environ.get("LOG_LEVEL"))
    logger.setLevel(level)
    handlers, problem = _build_handlers(level)
    for handler in handlers:
        logger.addHandler(handler)
    logger.propagate = False
    if problem:
        logger.warning(problem)
    return logger
