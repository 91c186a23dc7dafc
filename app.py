import sys

from bootstrapper import run
from config import load_config
from errors import SnippetboxError
from logs import new_loggers


def main(argv=None):
    """
    Process entry point. Every startup or listener error is fatal:
    it is logged through the error logger and the process exits 1.
    """
    config = load_config(argv)
    loggers = new_loggers(config.debug)
    try:
        run(config, loggers)
    except (SnippetboxError, OSError) as err:
        loggers.error.critical("%s", err, exc_info=config.debug)
        sys.exit(1)


if __name__ == '__main__':
    main()
