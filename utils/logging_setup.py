"""
Logging setup utilities for server runs.

Configures the root logger with a console handler and, when a log
directory is given, a file handler in a timestamped run directory.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def create_run_directory(base_dir: Path, run_name: str = "run") -> Path:
    """
    Create ``<base_dir>/<YYYYMMDD>_<HHMMSS>_<run_name>/``.

    Args:
        base_dir: Base directory for runs
        run_name: Suffix of the directory name

    Returns:
        Path to the created run directory
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = base_dir / f"{timestamp}_{run_name}"
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    run_name: str = "server",
    format_string: Optional[str] = None
) -> Optional[Path]:
    """
    Set up logging with a console handler and an optional file handler.

    Existing root handlers are removed, so calling this twice does not
    duplicate output.

    Args:
        level: Logging level (default: logging.INFO)
        log_dir: Base directory for a file log; console only when None
        run_name: Name of the run directory and log file
        format_string: Optional custom format string

    Returns:
        Path to the log file, or None without ``log_dir``

    Example:
        >>> log_file = setup_logging(logging.DEBUG, Path("runs"), "arena")
        >>> logging.getLogger(__name__).info("Logged to console and file")
    """
    formatter = logging.Formatter(format_string or DEFAULT_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_dir is None:
        return None

    run_dir = create_run_directory(Path(log_dir), run_name)
    log_file = run_dir / f"{run_name}.log"
    file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)
    return log_file
