"""
This module contains the default configuration settings for pipevisor.
It defines paths, supervision timeouts, logging options and the process title.
Values can be overridden from a `.env` file or the environment; the children
themselves are described in the YAML file pointed to by `PIPEVISOR_CONFIG`.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=False)

#* --- Core Paths ---
CONFIG_PATH = pathlib.Path(os.getenv("PIPEVISOR_CONFIG", "pipevisor.yaml"))

#* --- Supervisor Settings ---
SHUTDOWN_TIMEOUT = int(os.getenv("SHUTDOWN_TIMEOUT", "10"))  # seconds before force-killing
# Includes room for the whole line content; longer lines are wrapped.
MAX_LINE_LENGTH = int(os.getenv("MAX_LINE_LENGTH", "120"))
DEFAULT_TERMINATION_SIGNAL = "SIGTERM"

#* --- Process Identity ---
PROCESS_TITLE = os.getenv("PROCESS_TITLE", "pipevisor - Supervisor")

#* --- Logging ---
VERBOSE_LOGGING = os.getenv("PIPEVISOR_VERBOSE", "False").lower() in ('true', '1', 't')
SYSTEM_TAG = "SYSTEM"
