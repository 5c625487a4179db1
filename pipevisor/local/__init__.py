"""
Local package for pipevisor.

This package provides the supervisor configuration loader and the
supervisor runtime itself.
"""

from .config import ChildDefinition, ConfigError, SupervisorConfig, load_config

__all__ = ["ChildDefinition", "ConfigError", "SupervisorConfig", "load_config"]
