"""Centralized logging configuration.

This module provides consistent logging setup across the server, scripts and CLI.
"""

import logging
import os
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    name: str = "crm_mcp",
    level: str | None = None,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure logging with consistent format.

    Args:
        name: Logger name (typically __name__ from the calling module)
        level: Log level (defaults to LOG_LEVEL env var or INFO)
        log_file: Optional file path for logging output

    Returns:
        Configured logger instance
    """
    level = level or os.getenv("LOG_LEVEL", "INFO")

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    return logging.getLogger(name)


def sanitize_log_input(value: str) -> str:
    """Sanitize caller-supplied text for safe logging.

    Newlines and control characters are escaped so a tool argument
    cannot forge extra log entries.
    """
    sanitized = value.replace("\n", "\\n").replace("\r", "\\r")
    return "".join(c if c == "\t" or (ord(c) >= 0x20) else f"\\x{ord(c):02x}" for c in sanitized)
