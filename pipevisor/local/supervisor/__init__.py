"""
The Supervisor package.
Manages the lifecycle of the supervised child processes.

This package contains the central Supervisor class and its helper modules,
which together handle spawning, output multiplexing, signal bridging,
reaping and the two-stage teardown of all children.
"""
from .supervisor import Supervisor

__all__ = ['Supervisor']
