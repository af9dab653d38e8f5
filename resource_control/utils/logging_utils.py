import logging

from config import config


def configure_logging(level=None, force=False):
    """Configure root logging from config (LOG_LEVEL, LOG_FORMAT, LOG_DATE_FORMAT).

    `level` overrides config.LOG_LEVEL. Returns the package logger.
    """
    level = (level or config.LOG_LEVEL).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=config.LOG_FORMAT,
                        datefmt=config.LOG_DATE_FORMAT, force=force)
    # the driver is chatty at debug level
    logging.getLogger('pymongo').setLevel(max(logging.getLogger().level, logging.INFO))
    return logging.getLogger('resource_control')
