"""
Logging setup utilities for room clients.

This module provides functions to configure logging with console and optional
file output, and to create timestamped per-room log directories.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None
) -> Optional[Path]:
    """
    Set up logging with a console handler and, optionally, a file handler.

    Args:
        level: Logging level, as a number or a name such as "DEBUG"
        log_file: Optional path of a log file; its directory is created
        format_string: Optional custom format string. If None, uses default format.

    Returns:
        Path to the log file, or None when logging only to the console

    Example:
        >>> setup_logging(logging.DEBUG, Path("logs/room.log"))
        >>> logger = logging.getLogger(__name__)
        >>> logger.info("This will be logged to both console and file")
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    formatter = logging.Formatter(
        format_string or DEFAULT_FORMAT,
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers so repeated calls do not duplicate output
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    return log_file


def create_session_log_dir(
    base_dir: Path = Path("logs"),
    room_id: Optional[str] = None
) -> Path:
    """
    Create a timestamped directory for one room session.

    Directory format: <base_dir>/<YYYYMMDD>_<HHMMSS>_<room_id>/
    If room_id is None, uses "session".

    Example:
        >>> session_dir = create_session_log_dir(room_id="a1b2c3")
        >>> # Creates: logs/20250115_143022_a1b2c3/
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    session_dir = Path(base_dir) / f"{timestamp}_{room_id or 'session'}"
    session_dir.mkdir(parents=True, exist_ok=True)
    return session_dir
