"""
Logging Configuration
=====================
Sets up the 'calprojector' logger for the CLI and for hosts of the Qt workers.

Why is this file needed?
------------------------
1. One format: every module logs through ``logging.getLogger(__name__)`` and
   ends up in the same stdout (and optional file) handlers.
2. Noise control: numba reports every compilation pass on its own loggers and
   Pillow logs each PNG chunk at DEBUG. A run at DEBUG should show per-angle
   detail of the pipeline, not thousands of compiler lines.
"""
import logging
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%H:%M:%S'

# Floor applied to third-party loggers regardless of the requested level
THIRD_PARTY_LEVELS: dict[str, int] = {
    "numba": logging.WARNING,
    "PIL": logging.INFO,
}


def _detach_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configures the 'calprojector' logger and quiets chatty dependencies.

    Calling it again replaces the previous handlers (closing an open log file)
    instead of stacking a second set.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file (overwritten per run).
    """
    logger = logging.getLogger("calprojector")
    logger.setLevel(level)
    _detach_handlers(logger)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    for name, floor in THIRD_PARTY_LEVELS.items():
        logging.getLogger(name).setLevel(max(level, floor))

    logger.info(f"Logging initialized at {logging.getLevelName(level)}.")
