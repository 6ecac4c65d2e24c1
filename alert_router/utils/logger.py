"""Logging configuration"""

import logging
import sys
from pathlib import Path
from pythonjsonlogger import jsonlogger

ROOT_LOGGER = 'alert_router'

# uvicorn runs with log_config=None, so its loggers share our handlers
SERVER_LOGGERS = ('uvicorn', 'uvicorn.error', 'uvicorn.access')


def _formatter(log_format):
    if log_format == 'json':
        return jsonlogger.JsonFormatter(
            '%(asctime)s %(levelname)s %(name)s %(message)s',
            rename_fields={'levelname': 'level', 'name': 'logger', 'asctime': 'timestamp'}
        )
    return logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s - %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%S'
    )


def _handlers(log_file, formatter):
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))
        except OSError as e:
            print(f"Failed to setup file logging: {e}", file=sys.stderr)

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logger(config):
    """
    Configure the package logger and the API server loggers

    Args:
        config: Configuration dictionary; reads router.log_level,
            router.log_format and router.log_file

    Returns:
        The package logger
    """
    router_config = config.get('router', {})
    level = getattr(logging, router_config.get('log_level', 'INFO').upper(), logging.INFO)
    handlers = _handlers(router_config.get('log_file'), _formatter(router_config.get('log_format', 'text')))

    for name in (ROOT_LOGGER,) + SERVER_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers.clear()
        if name == 'uvicorn.access' and level > logging.DEBUG:
            # One line per push request is only useful when debugging
            logger.setLevel(logging.WARNING)
        for handler in handlers:
            logger.addHandler(handler)
        logger.propagate = False

    return logging.getLogger(ROOT_LOGGER)


def get_logger(name):
    """Get logger instance"""
    return logging.getLogger(f'{ROOT_LOGGER}.{name}')
