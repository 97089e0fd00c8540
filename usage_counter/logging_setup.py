"""Logging configuration"""

import logging

from rich.console import Console
from rich.logging import RichHandler

from usage_counter.config import Settings


def setup_logging(settings: Settings) -> None:
    """Route the root logger through a Rich console handler."""
    level = getattr(logging, settings.log_level, logging.INFO)

    rich_handler = RichHandler(
        console=Console(width=settings.log_width),
        show_time=True,
        show_level=True,
        show_path=False,
        log_time_format=settings.log_time_format,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )

    # force=True: uvicorn configures the root logger before the app imports
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[rich_handler],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger(__name__).info(
        "Logging: %s | instance=%s", settings.log_level, settings.instance_name
    )
