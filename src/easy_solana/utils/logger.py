# src/easy_solana/utils/logger.py

import logging
from typing import Optional, Union
from urllib.parse import urlparse

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str) -> logging.Logger:
    """Returns a module logger. Handlers are configured once by setup_logging."""
    return logging.getLogger(name)


def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def redact_endpoint(endpoint: Optional[str]) -> str:
    """Strips path and query from an RPC URL; providers put API keys there."""
    if not endpoint:
        return "<unset>"
    parsed = urlparse(endpoint)
    if not parsed.scheme or not parsed.hostname:
        return "<redacted>"
    return f"{parsed.scheme}://{parsed.hostname}"
