import logging
from typing import Optional

from rich.logging import RichHandler


def configure_logging(debug: bool = False) -> None:
    """
    Route all log records to a rich console handler.

    Args:
        debug: If True, log at DEBUG level with timestamps and logger names; otherwise, log plain messages at INFO.
    """

    date_format = "%Y-%m-%d %H:%M:%S"

    if debug:
        level = logging.DEBUG
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    else:
        level = logging.INFO
        log_format = "%(message)s"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        force=True,
        handlers=[RichHandler(level=level, show_time=debug, show_level=debug)],
    )
    # Remote filesystems are chatty at debug level
    fsspec_logger = logging.getLogger("fsspec")
    fsspec_logger.setLevel(logging.WARN if not debug else logging.DEBUG)


def get_logger(
    name: str,
    debug: Optional[bool] = None,
) -> logging.Logger:
    """
    Get a logger. Console logging is only configured when `debug` is given explicitly, so importing mrcdecode never
    touches the logging setup of the host application.

    Args:
        name: Name of the logger
        debug: If not None, call configure_logging(debug) first.

    Returns:
        The logger with the given name
    """
    if debug is not None:
        configure_logging(debug)
    return logging.getLogger(name)
