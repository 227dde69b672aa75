from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional


logger = logging.getLogger("vibebot")

SECURITY_LOGGER = "vibebot.services.security"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
# one event per line, grep-able by "[SECURITY]" / "[THREAT-"
SECURITY_FORMAT = "%(asctime)s %(message)s"
# behind a proxy the client address is only in X-Forwarded-For
ACCESS_LOG_FORMAT = '%a xff=%{X-Forwarded-For}i "%r" %s %b %Tfs "%{User-Agent}i"'


def _rotating_handler(path: str, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    log_dir = os.path.dirname(path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    security_log_file: Optional[str] = None,
) -> logging.Logger:
    """Console + rotating file logging for the web service.

    Security events additionally go to ``security_log_file`` so that they can
    be watched separately from request and application logs.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(_rotating_handler(log_file, max_bytes, backup_count))

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    # telegram's httpx client logs every Bot API call at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(level)

    security = logging.getLogger(SECURITY_LOGGER)
    for handler in list(security.handlers):
        security.removeHandler(handler)
        handler.close()
    if security_log_file:
        handler = _rotating_handler(security_log_file, max_bytes, backup_count)
        handler.setFormatter(logging.Formatter(SECURITY_FORMAT))
        handler.setLevel(logging.WARNING)
        security.addHandler(handler)

    logger.setLevel(level)
    logger.debug("Logging configured (level=%s, file=%s, security=%s)", level, log_file, security_log_file)
    return logger


__all__ = ["ACCESS_LOG_FORMAT", "SECURITY_LOGGER", "setup_logging", "logger"]
