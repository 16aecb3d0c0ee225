import logging
import sys

VALID_LOG_LEVELS = ['CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG', 'NOTSET']

# Third-party loggers that flood the add-on log at DEBUG
NOISY_LOGGERS = ['paho']


def create_logger(log_level: str = 'INFO', name: str = 'ocpp_monitor'):
    """
    Set up logging for the monitor and return its logger.

    main_loop calls this twice: once with INFO so config loading is visible,
    then again with the configured log_level. basicConfig(force=True) swaps the
    previous stdout handler out, so repeated calls don't duplicate lines.
    Per-frame details from the extractor and state machine only show at DEBUG;
    the MQTT client is held at INFO or above regardless of the chosen level.

    Args:
        log_level: Level name from the add-on options, any case; unknown
            names fall back to INFO
        name: Logger name

    Returns:
        Configured logger instance
    """
    level_name = str(log_level).upper()
    if level_name not in VALID_LOG_LEVELS:
        level_name = 'INFO'
    level = getattr(logging, level_name)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stdout,
        force=True
    )

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(level, logging.INFO))

    logger = logging.getLogger(name)
    logger.setLevel(level)

    return logger
