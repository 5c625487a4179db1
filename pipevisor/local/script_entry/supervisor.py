"""
This is a minimal entry point script for the supervisor process.

Its sole responsibility is to hand over to pipevisor.main, so the supervisor
can be started with `python -m pipevisor.local.script_entry.supervisor`.
"""
import sys

from pipevisor.main import main


if __name__ == "__main__":
    sys.exit(main())
