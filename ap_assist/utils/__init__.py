"""
Utility Module for the AP Assist Pipeline.

This module provides common utilities used across all other modules:
    - Logging configuration
    - Exception hierarchy
    - File naming and text helpers
"""

from .logger import setup_logger, get_logger
from .helpers import ensure_directory, generate_timestamp, store_filename

__all__ = [
    'setup_logger',
    'get_logger',
    'ensure_directory',
    'generate_timestamp',
    'store_filename'
]
