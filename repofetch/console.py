"""Console output and log groups."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.logging import RichHandler

console = Console(stderr=True)

logger = logging.getLogger("repofetch")


def configure_logging(verbose: bool = False) -> None:
    """Route repofetch logs through rich."""
    handler = RichHandler(console=console, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False


@contextmanager
def group(title: str) -> Iterator[None]:
    """Group the log lines of one acquisition step under a title."""
    logger.info(f"▶ {title}")
    started = time.monotonic()
    try:
        yield
    finally:
        logger.debug(f"◀ {title} ({time.monotonic() - started:.2f}s)")
