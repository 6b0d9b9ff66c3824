"""Process-wide logging setup for chatgate."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

__all__ = ["configure_logging"]

LOG_DIR_ENV = "CHATGATE_LOG_DIR"
_MANAGED_HANDLER_FLAG = "_chatgate_managed_handler"


def _default_log_directory() -> Path:
    env_override = os.environ.get(LOG_DIR_ENV)
    if env_override:
        return Path(env_override).expanduser()
    return Path.cwd() / "logs"


def _remove_managed_handlers(logger: logging.Logger) -> None:
    """Detach handlers installed by an earlier :func:`configure_logging` call."""

    for handler in list(logger.handlers):
        if getattr(handler, _MANAGED_HANDLER_FLAG, False):
            logger.removeHandler(handler)
            handler.close()


def configure_logging(
    log_name: str,
    *,
    level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    include_console: bool = True,
) -> Path:
    """Send root logging to ``<log_dir>/<log_name>.log`` (and the console)."""

    target_directory = (
        Path(log_dir).expanduser() if log_dir else _default_log_directory()
    )
    target_directory.mkdir(parents=True, exist_ok=True)
    log_path = target_directory / f"{log_name}.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    _remove_managed_handlers(root_logger)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if include_console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        setattr(handler, _MANAGED_HANDLER_FLAG, True)
        root_logger.addHandler(handler)

    logging.captureWarnings(True)
    return log_path
