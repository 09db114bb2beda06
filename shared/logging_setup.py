"""
Logging configuration for command-line entry points.

Library modules only create module loggers; handlers are installed here,
once, by whoever owns the process.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(verbose: bool = False, console: Optional[Console] = None) -> None:
    """
    Route log records through rich.

    Args:
        verbose: Show DEBUG records (engine state transitions, probes)
        console: Console to write to; shares output with progress bars
    """
    level = logging.DEBUG if verbose else logging.WARNING

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = RichHandler(
        console=console,
        show_path=verbose,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root_logger.addHandler(handler)

    # requests/urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
