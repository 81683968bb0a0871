"""Logging configuration for the application."""

import logging
import sys

from echohub.core.config import get_settings


def setup_logging() -> None:
    """Configure application-wide logging.

    Level is DEBUG when settings.debug is True, otherwise settings.log_level.
    Output goes to stdout.
    """
    settings = get_settings()
    log_level = logging.DEBUG if settings.debug else getattr(
        logging, settings.log_level.upper(), logging.INFO
    )
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
