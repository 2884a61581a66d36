"""Script helpers."""

import logging
import os
from pathlib import Path
from urllib.parse import urlparse

import coloredlogs


def get_url_domain(url: str) -> str:
    """Redact URL so that only domain is displayed.

    Some services e.g. infura use path as an API key.
    """
    parsed = urlparse(url)
    if parsed.port in (80, 443, None):
        return parsed.hostname
    else:
        return f"{parsed.hostname}:{parsed.port}"


def setup_console_logging(
    default_log_level="info",
    simplified_logging=False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Set up coloured log output.

    - Log level comes from ``LOG_LEVEL`` environment variable
    - Tune down some noisy dependency library logging

    :param simplified_logging:
        Only print messages, for progress output in scripts.

    :param log_file:
        Also write the log to this file, always at least at INFO level.

    :return:
        Root logger
    """
    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert numeric_level, f"No level: {level}"

    if simplified_logging:
        fmt = "%(message)s"
        date_fmt = "%H:%M:%S"
    else:
        fmt = "%(asctime)s %(name)-36s [%(threadName)s] %(message)s"
        date_fmt = "%Y-%m-%d %H:%M:%S"

    coloredlogs.install(level=numeric_level, fmt=fmt, datefmt=date_fmt)

    root = logging.getLogger()

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        # File handler always uses plain formatter (no ANSI codes)
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(min(logging.INFO, numeric_level))
        file_handler.setFormatter(logging.Formatter(fmt, date_fmt))
        root.setLevel(min(logging.INFO, numeric_level))
        root.addHandler(file_handler)

    # Mute noise
    logging.getLogger("web3.providers.HTTPProvider").setLevel(logging.WARNING)
    logging.getLogger("web3.RequestManager").setLevel(logging.WARNING)
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return root
