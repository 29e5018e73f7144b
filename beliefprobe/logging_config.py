"""Shared logging configuration for the belief sensitivity toolkit.

Library modules only create loggers. Call ``configure_logging()`` once at
an entry point (a notebook, a batch script, a service) to see their
output. The function is idempotent: if the root logger already has
handlers, it does nothing.

Usage::

    settings = get_settings()
    configure_logging(settings.log_level)
"""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure the root logger with a console handler.

    Only configures if the root logger has no handlers (idempotent).

    Args:
        level: Logging level as an int or a name such as "DEBUG".
    """
    root = logging.getLogger()
    if root.handlers:
        return

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(console)
    root.setLevel(level)
