"""Logging helpers for the email dispatch service."""

import logging


def get_logger(name: str = "EmailDispatch") -> logging.Logger:
    """Return a configured :class:`logging.Logger` instance.

    Note: Logging configuration should be done via logging.basicConfig()
    in the entry point (``email-dispatch serve``) to avoid duplicate handlers.
    """
    return logging.getLogger(name)


def configure_logging(level: str = "INFO") -> None:
    """Install the process-wide logging format used by the service."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='[%(asctime)s] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        force=True,
    )
