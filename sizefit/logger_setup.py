"""
Logging Setup for SizeFit
Initializes logging configuration from YAML with a coloured console
"""

import copy
import os
import logging
import logging.config
from typing import Any, Dict, Optional

import yaml
from colorama import init, Fore, Style

# Initialize colorama for Windows compatibility
init(autoreset=True)

LOGGER_NAME = 'sizefit'

DEFAULT_LOGGING_CONFIG: Dict[str, Any] = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'detailed': {
            'format': '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        },
        'console': {
            'format': '%(asctime)s | %(levelname)-8s | %(message)s',
            'datefmt': '%H:%M:%S'
        }
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'level': 'WARNING',
            'formatter': 'console',
            'stream': 'ext://sys.stdout'
        },
        'file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': 'DEBUG',
            'formatter': 'detailed',
            'filename': 'logs/sizefit.log',
            'maxBytes': 5 * 1024 * 1024,
            'backupCount': 5,
            'encoding': 'utf-8'
        }
    },
    'loggers': {
        LOGGER_NAME: {
            'level': 'DEBUG',
            'handlers': ['console', 'file'],
            'propagate': False
        }
    },
    'root': {
        'level': 'WARNING',
        'handlers': ['console']
    }
}


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the level name for console output"""

    COLORS = {
        'DEBUG': Fore.CYAN,
        'INFO': Fore.GREEN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.MAGENTA + Style.BRIGHT,
    }

    def format(self, record):
        # Colour a copy so file handlers sharing the record stay plain
        if record.levelname in self.COLORS:
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{Style.RESET_ALL}"
        return super().format(record)


def _load_logging_config(config_path: Optional[str]) -> Dict[str, Any]:
    if config_path and os.path.exists(config_path):
        with open(config_path, 'r', encoding='utf-8') as file:
            config_data = yaml.safe_load(file) or {}
        return config_data.get('logging', copy.deepcopy(DEFAULT_LOGGING_CONFIG))
    return copy.deepcopy(DEFAULT_LOGGING_CONFIG)


def setup_logging(config_path: Optional[str] = None, log_level: Optional[str] = None,
                  logs_dir: str = "logs", logging_config: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """
    Setup logging configuration

    Args:
        config_path: YAML file with a top-level ``logging`` mapping (dictConfig schema)
        log_level: Override console level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logs_dir: Directory that receives file handler output
        logging_config: Already-loaded dictConfig mapping, takes precedence over config_path
    """
    config = copy.deepcopy(logging_config) if logging_config else _load_logging_config(config_path)

    # File handlers write under logs_dir regardless of the relative path in the config
    for handler in config.get('handlers', {}).values():
        filename = handler.get('filename')
        if filename:
            os.makedirs(logs_dir, exist_ok=True)
            handler['filename'] = os.path.join(logs_dir, os.path.basename(filename))

    if log_level:
        log_level = log_level.upper()
        console = config.get('handlers', {}).get('console')
        if console:
            console['level'] = log_level

    try:
        logging.config.dictConfig(config)
    except (ValueError, TypeError, AttributeError, ImportError) as config_error:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s | %(levelname)-8s | %(message)s',
            datefmt='%H:%M:%S'
        )
        logger = logging.getLogger(LOGGER_NAME)
        logger.error(f"Failed to apply logging configuration: {config_error}")
        logger.info("Using basic logging configuration as fallback")
        return logger

    logger = logging.getLogger(LOGGER_NAME)
    console_format = config.get('formatters', {}).get('console', {})
    for handler in logger.handlers:
        if type(handler) is logging.StreamHandler:
            handler.setFormatter(ColoredFormatter(
                fmt=console_format.get('format', '%(asctime)s | %(levelname)-8s | %(message)s'),
                datefmt=console_format.get('datefmt', '%H:%M:%S')
            ))

    logger.debug("Logging initialized")
    return logger


def get_logger(name: str = None) -> logging.Logger:
    """Get a logger instance"""
    if name:
        return logging.getLogger(f'{LOGGER_NAME}.{name}')
    return logging.getLogger(LOGGER_NAME)
