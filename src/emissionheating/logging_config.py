"""
Logging Configuration
Attaches console/file handlers to the 'emissionheating' logger.

Library modules only call ``logging.getLogger(__name__)``; handlers are set up
once by the runner (or by a script embedding the solver).
"""
import logging
import sys
from typing import Optional, Union

PACKAGE_LOGGER = "emissionheating"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%H:%M:%S'


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    capture_warnings: bool = True,
) -> logging.Logger:
    """
    Configures the package logger.

    Args:
        level: Logging level, as a number (logging.DEBUG) or a name ("DEBUG").
        log_file: Optional path to save logs to a file (overwritten).
        capture_warnings: Route ``warnings.warn`` messages (numba, scipy, numpy)
            to the ``py.warnings`` logger, which gets the same handlers.

    Returns:
        The configured package logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown logging level: {level}")

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w', encoding='utf-8'))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logger = logging.getLogger(PACKAGE_LOGGER)
    _replace_handlers(logger, handlers)
    logger.setLevel(level)

    logging.captureWarnings(capture_warnings)
    if capture_warnings:
        _replace_handlers(logging.getLogger("py.warnings"), handlers)

    logger.info("Logging initialized.")
    return logger


def _replace_handlers(logger: logging.Logger, handlers: list[logging.Handler]) -> None:
    # A repeated setup (tests, notebooks) would otherwise print every record twice
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
