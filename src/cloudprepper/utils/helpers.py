#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Common utility functions
Provides logging setup, filename sanitizing and timestamp formatting
"""

import logging
import re
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Union
from datetime import datetime


def setup_logging(verbose: bool = False, log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging system

    MCP stdio owns stdout, so console output goes to stderr.

    Args:
        verbose: Whether to enable verbose logging mode
        log_dir: Directory for the dated log file, no file output when None

    Returns:
        Configured logger object
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logger = logging.getLogger('cloudprepper')
    logger.setLevel(log_level)

    # Avoid duplicate handlers
    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f'cloudprepper_{datetime.now().strftime("%Y%m%d")}.log'
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def sanitize_filename_part(value: str, max_length: int = 20, replacement: str = '_') -> str:
    """
    Reduce a value to a filename-safe fragment

    Args:
        value: Raw value (certification name, domain, job id)
        max_length: Maximum fragment length
        replacement: Character substituted for anything outside [A-Za-z0-9]

    Returns:
        Sanitized fragment
    """
    return re.sub(r'[^a-zA-Z0-9]', replacement, value)[:max_length]


def format_file_timestamp(timestamp: Optional[datetime] = None) -> str:
    """
    Format timestamp for filenames (second resolution, no colons)

    Args:
        timestamp: Timestamp, if None use current time

    Returns:
        Time string like 2026-01-05T21-48-55
    """
    if timestamp is None:
        timestamp = datetime.now()
    return timestamp.strftime('%Y-%m-%dT%H-%M-%S')


def as_list(value: Union[None, str, Sequence[str]]) -> List[str]:
    """Normalize a single value or a sequence to a list"""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)
