"""Logging configuration"""

from __future__ import annotations

import logging
import sys

from src.config import settings


def setup_logging() -> None:
    """Configure application logging"""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    # Avoid duplicate handlers when the app factory runs more than once (tests).
    if not any(getattr(h, "_rag_handler", False) for h in root_logger.handlers):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler._rag_handler = True  # type: ignore[attr-defined]
        root_logger.addHandler(console_handler)

    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    # SDK request logs are noisy at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
