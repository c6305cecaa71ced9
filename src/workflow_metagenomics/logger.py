# ===================================== IMPORTS ====================================== #

# Standard Library Imports
from datetime import datetime
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional, Union

# Third-Party Imports
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

# Local Imports
from workflow_metagenomics import constants

# ========================== INITIALIZATION & CONFIGURATION ========================== #

LOG_THEME = Theme({
    "logging.time": "bold white",
    "logging.level.info": "bold white",
    "logging.level.debug": "dim cyan",
    "logging.level.warning": "bold yellow",
    "logging.level.error": "bold red",
    "logging.level.critical": "reverse bold bright_white on red",
})

# Log records and progress bars share one console so bars stay below the log lines
console = Console(theme=LOG_THEME)

# Level used when reporting each step status in the run summary
STATUS_LEVELS = {
    'completed': logging.INFO,
    'disabled': logging.INFO,
    'skipped': logging.WARNING,
    'failed': logging.WARNING,
}

# ==================================== FUNCTIONS ===================================== #

def setup_logging(
    log_dir_path: Union[str, Path],
    log_filename: Optional[str] = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_file_size: int = constants.DEFAULT_LOG_MAX_BYTES,
    backup_count: int = constants.DEFAULT_LOG_BACKUPS
) -> logging.Logger:
    """
    Attach a rotating DEBUG log file and a Rich console handler to the
    package logger. Calling it again replaces both handlers.

    Args:
        log_dir_path:  Directory of the run's log files (created if missing).
        log_filename:  Defaults to 'workflow_metagenomics_<timestamp>.log'.
        console_level: Lowest level shown on the console.
        file_level:    Lowest level written to the log file.
        max_file_size: Rotation size of the log file in bytes.
        backup_count:  Rotated files to keep.

    Returns:
        The configured package logger.
    """
    log_dir_path = Path(log_dir_path)
    log_dir_path.mkdir(parents=True, exist_ok=True)
    if log_filename is None:
        log_filename = f"{constants.LOGGER_NAME}_{datetime.now():%Y-%m-%d_%H%M%S}.log"
    log_file_path = log_dir_path / log_filename

    logger = logging.getLogger(constants.LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    file_handler = RotatingFileHandler(
        filename=log_file_path,
        maxBytes=max_file_size,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)-8s %(name)s:%(filename)s:%(funcName)s(): %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(file_handler)

    rich_handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        level=console_level,
        show_path=False,
        markup=False,
        log_time_format="[%X]",
    )
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(rich_handler)

    logger.info(f"Logging to {log_file_path}")
    return logger


def log_step_summary(summary: Dict[str, str]) -> None:
    """Log one line per workflow step; failed and skipped steps at WARNING."""
    logger = logging.getLogger(constants.LOGGER_NAME)
    width = max((len(step) for step in summary), default=0)
    for step, status in summary.items():
        logger.log(
            STATUS_LEVELS.get(status, logging.INFO),
            f"{step.replace('_', ' '):<{width}}  {status}"
        )
