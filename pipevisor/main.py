import sys
import logging
from typing import List, Optional

import setproctitle

from pipevisor import settings
from pipevisor.log.setup import setup_logging
from pipevisor.local.config import ConfigError, load_config
from pipevisor.local.supervisor import Supervisor

log = logging.getLogger("pipevisor")

EXIT_USAGE = 1
EXIT_CONFIG = 1


def main(argv: Optional[List[str]] = None) -> int:
    """
    The main entry point of the supervisor.

    :param argv: Command-line arguments without the program name; none are accepted.
    :return: The process exit status.
    """
    args = sys.argv[1:] if argv is None else argv

    setup_logging(logging.DEBUG if settings.VERBOSE_LOGGING else logging.INFO)

    if args:
        log.error("No command line arguments accepted.")
        return EXIT_USAGE

    setproctitle.setproctitle(settings.PROCESS_TITLE)

    try:
        config = load_config()
    except ConfigError as e:
        log.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG

    return Supervisor(config).run()


if __name__ == "__main__":
    sys.exit(main())
