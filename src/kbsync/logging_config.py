"""Logging configuration for kbsync.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, by the CLI or by an embedding application.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

# Third-party loggers that are chatty at INFO.
_NOISY_LOGGERS = ("litellm", "LiteLLM", "httpx", "httpcore", "watchfiles")


def configure_logging(verbose: bool = False, console: Console | None = None) -> logging.Logger:
    """Attach a RichHandler to the ``kbsync`` logger.

    Idempotent: calling again only adjusts the level.

    Args:
        verbose: DEBUG when True, INFO otherwise.
        console: Console to render to (defaults to stderr).

    Returns:
        The configured ``kbsync`` logger.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger("kbsync")
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=verbose,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="%H:%M:%S"))
        logger.addHandler(handler)
        logger.propagate = False

    for handler in logger.handlers:
        handler.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)

    return logger
