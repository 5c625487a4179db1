"""
Logging module for the supervisor.
This module provides functionality to set up console logging and to obtain
the loggers used for tagged child output.
"""

from .setup import setup_logging, get_proc_logger, flush_logging

__all__ = ["setup_logging", "get_proc_logger", "flush_logging"]
