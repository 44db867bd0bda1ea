import logging
import os
import sys

DEBUG = os.getenv('DEBUG', 'False').lower() in ['true', '1', 'yes']
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
if DEBUG:
    LOG_LEVEL = 'DEBUG'

LOG_FORMAT = (
    '%(asctime)s - %(name)s:%(levelname)s: %(filename)s:%(lineno)s - %(message)s'
)

# Artifactory reports promotion messages with its own level names.
ARTIFACTORY_LOG_LEVELS: dict[str, int] = {
    'ERROR': logging.ERROR,
    'WARN': logging.WARNING,
    'INFO': logging.INFO,
    'DEBUG': logging.DEBUG,
    'TRACE': logging.DEBUG,
}


def get_artifactory_log_level(level: str | None) -> int:
    """Map an Artifactory message level to a logging level.

    Unknown or missing levels are reported as warnings.
    """
    if not level:
        return logging.WARNING
    return ARTIFACTORY_LOG_LEVELS.get(level.strip().upper(), logging.WARNING)


def _get_console_handler(log_level: int = logging.INFO) -> logging.StreamHandler:
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return console_handler


def get_logger(name: str = 'artifactory_ops') -> logging.Logger:
    logger = logging.getLogger(name)
    level = logging.getLevelName(LOG_LEVEL)
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)
    if not logger.handlers:
        logger.addHandler(_get_console_handler(level))
    return logger


artifactory_logger = get_logger()
