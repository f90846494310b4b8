"""
Logging setup and helpers for the crawler.
"""

import json
import logging
import logging.handlers
import os
import platform
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import psutil


THIRD_PARTY_LOGGERS = {
    'aiohttp': logging.WARNING,
    'urllib3': logging.WARNING,
    'redis': logging.WARNING,
    'asyncio': logging.WARNING,
}


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        # Context added by CrawlerLogAdapter
        for key in ('url', 'event_type', 'crawler', 'stat_name', 'stat_value'):
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class CrawlerLogAdapter(logging.LoggerAdapter):
    """Logger adapter that adds crawler-specific context."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs

    def log_url_event(self, level: int, url: str, message: str, **kwargs):
        """Log an event concerning a single URL."""
        extra = kwargs.pop('extra', {})
        extra.update({'url': url, 'event_type': 'url_event'})
        self.log(level, f"{message} [{url}]", extra=extra, **kwargs)

    def log_crawler_stat(self, stat_name: str, value: Any, **kwargs):
        """Log a crawler statistic."""
        extra = kwargs.pop('extra', {})
        extra.update({'stat_name': stat_name, 'stat_value': value, 'event_type': 'crawler_stat'})
        self.info(f"Stat: {stat_name} = {value}", extra=extra, **kwargs)


class NoisyLoggerFilter(logging.Filter):
    """Drops records from chatty third-party modules."""

    def __init__(self, suppress_modules: Optional[list] = None):
        super().__init__()
        self.suppress_modules = suppress_modules or ['aiohttp.access', 'urllib3.connectionpool']

    def filter(self, record: logging.LogRecord) -> bool:
        return not any(record.name.startswith(module) for module in self.suppress_modules)


def setup_logging(config, enable_filtering: bool = True) -> logging.Logger:
    """
    Setup logging for the crawler.

    Args:
        config: LoggingConfig with level, file, format and json settings
        enable_filtering: drop records from noisy third-party modules

    Returns:
        Configured root logger
    """
    log_file = Path(config.file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper()))
    root_logger.handlers.clear()

    if config.json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(config.format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)

    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=50 * 1024 * 1024,  # 50MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)

    error_log_file = log_file.parent / 'errors.log'
    error_handler = logging.handlers.RotatingFileHandler(
        error_log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=3,
        encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)

    for handler in (console_handler, file_handler, error_handler):
        handler.setFormatter(formatter)
        if enable_filtering:
            handler.addFilter(NoisyLoggerFilter())
        root_logger.addHandler(handler)

    for logger_name, level in THIRD_PARTY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(level)

    root_logger.info("Logging system initialized")
    root_logger.info(f"Log file: {log_file}")
    root_logger.info(f"Log level: {config.level}")

    return root_logger


def get_crawler_logger(name: str, **extra_context) -> CrawlerLogAdapter:
    """Get a logger adding extra_context to every record."""
    return CrawlerLogAdapter(logging.getLogger(name), extra_context)


def log_system_info():
    """Log system and environment information."""
    logger = logging.getLogger(__name__)

    logger.info("=== SYSTEM INFORMATION ===")
    logger.info(f"Platform: {platform.platform()}")
    logger.info(f"Python version: {sys.version}")
    logger.info(f"CPU cores: {psutil.cpu_count()}")
    logger.info(f"Memory: {psutil.virtual_memory().total / 1024**3:.1f} GB")

    for var in ('PYTHONPATH', 'HOME', 'USER'):
        logger.debug(f"ENV {var}: {os.environ.get(var, 'Not set')}")
