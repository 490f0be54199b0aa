import os
import logging
from logging.handlers import TimedRotatingFileHandler
from typing import Optional
from storagekit.config import get_config


class DatePrefixTimedRotatingFileHandler(TimedRotatingFileHandler):
    def __init__(self, filename: str, when: str = 'midnight', interval: int = 1,
                 backupCount: int = 0, encoding: str = 'utf-8', delay: bool = False):
        self._base_filename = filename
        super().__init__(filename, when, interval, backupCount, encoding, delay)

    def _open(self):
        log_dir = os.path.dirname(self.baseFilename)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)
        return super()._open()


class ActionFilter(logging.Filter):
    """Gives records from third-party callers an action tag so the format never breaks."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, 'action'):
            record.action = '-'
        return True


def setup_logger(name: str, log_file: Optional[str], level: str = "INFO",
                 log_format: str = "%(asctime)s [%(levelname)s] %(message)s",
                 date_format: str = "%Y-%m-%d %H:%M:%S") -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(log_format, datefmt=date_format)
    action_filter = ActionFilter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(action_filter)
    logger.addHandler(console_handler)

    if not log_file:
        return logger

    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    file_handler = DatePrefixTimedRotatingFileHandler(
        log_file,
        when='midnight',
        interval=1,
        backupCount=30,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    file_handler.addFilter(action_filter)
    logger.addHandler(file_handler)

    return logger


def get_fs_logger(force: bool = False) -> logging.Logger:
    global _fs_logger
    if _fs_logger is None or force:
        cfg = get_config()
        log_dir = cfg.log.get('dir')
        log_file = os.path.join(log_dir, "storagekit.log") if log_dir else None
        _fs_logger = setup_logger("storagekit", log_file, cfg.log.get('level', 'INFO'),
                                  cfg.log.get('format') or "%(asctime)s [%(levelname)s] %(message)s",
                                  cfg.log.get('date_format') or "%Y-%m-%d %H:%M:%S")
    return _fs_logger


_fs_logger: Optional[logging.Logger] = None


def reinit_loggers():
    global _fs_logger
    _fs_logger = None


def fs_log(action: str, message: str, level: str = "INFO"):
    global _fs_logger
    if _fs_logger is None:
        _fs_logger = get_fs_logger()
    log_func = getattr(_fs_logger, level.lower(), _fs_logger.info)
    log_func(message, extra={"action": action})
