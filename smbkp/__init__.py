import os
import logging
from logging.handlers import RotatingFileHandler

from smbkp.config import Config


__version__ = Config.VERSION


def configure_logging(log_dir=None, debug=False):
    """
    Configure application logging.

    Operator-facing output is printed by smbkp.console.Console; the handlers
    set up here only add diagnostics (stderr, with --debug) and a rotating
    log file (when log_dir is given).
    """
    logger = logging.getLogger('smbkp')

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(log_level)
    logger.propagate = False

    # Console handler (diagnostics only; Console already prints status lines)
    if debug:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        console_handler.addFilter(lambda record: not record.name.startswith('smbkp.console'))
        console_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
        )
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    # File handler
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'smbkp.log'),
            maxBytes=Config.LOG_MAX_BYTES,
            backupCount=Config.LOG_BACKUP_COUNT,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    logger.debug(f"Logging configured (level: {logging.getLevelName(log_level)})")
    return logger
