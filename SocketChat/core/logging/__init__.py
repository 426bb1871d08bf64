"""
Logging setup for SocketChat.

Every module logs through ``logging.getLogger(__name__)``; this package only
decides where records go. Presets exist for development, production and
testing, selected by the ``SOCKETCHAT_ENV`` environment variable.

Usage:
    from SocketChat.core.logging import auto_configure, get_logger

    auto_configure()
    logger = get_logger(__name__)
    logger.info("Server starting")
"""

import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional


@dataclass
class LogConfig:
    """
    Configuration for the logging system.

    Attributes:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files
        console_output: Whether to output to console
        file_output: Whether to output to rotating files
        max_bytes: Size of a log file before rotation
        backup_count: Number of rotated files kept
        format_string: Custom format string for log messages
        date_format: Date format string
        json_output: Emit one JSON object per record on the console
        component_levels: Logger name -> level overrides
    """
    level: str = "INFO"
    log_dir: str = "./logs"
    console_output: bool = True
    file_output: bool = True
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5
    format_string: Optional[str] = None
    date_format: str = "%Y-%m-%d %H:%M:%S"
    json_output: bool = False
    component_levels: Dict[str, str] = field(default_factory=dict)


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the level name on terminals."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
        'RESET': '\033[0m'
    }

    def __init__(self, fmt: str, datefmt: str = None, use_colors: bool = True):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and sys.platform != 'win32'

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors or record.levelname not in self.COLORS:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{self.COLORS[original]}{original}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class JsonFormatter(logging.Formatter):
    """Formatter that outputs log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        import json

        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'function': record.funcName,
            'line': record.lineno,
        }
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


def get_default_format() -> str:
    return "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_detailed_format() -> str:
    return (
        "%(asctime)s - %(name)s - %(levelname)s - "
        "[%(filename)s:%(lineno)d - %(funcName)s] - %(message)s"
    )


class LoggingManager:
    """
    Installs handlers on the root logger.

    Calling ``configure`` again replaces the handlers installed by the
    previous call, so tests can reconfigure freely.
    """

    def __init__(self):
        self._config: Optional[LogConfig] = None
        self._handlers: List[logging.Handler] = []

    @property
    def config(self) -> Optional[LogConfig]:
        return self._config

    def configure(self, config: LogConfig) -> None:
        self._config = config
        level = getattr(logging, config.level.upper())

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        for handler in self._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers = []

        if config.console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)
            if config.json_output:
                console_handler.setFormatter(JsonFormatter())
            else:
                fmt = config.format_string or get_default_format()
                console_handler.setFormatter(ColoredFormatter(fmt, config.date_format))
            self._add(root_logger, console_handler)

        if config.file_output:
            Path(config.log_dir).mkdir(parents=True, exist_ok=True)
            formatter = logging.Formatter(
                config.format_string or get_detailed_format(), config.date_format
            )

            file_handler = logging.handlers.RotatingFileHandler(
                os.path.join(config.log_dir, "socketchat.log"),
                maxBytes=config.max_bytes,
                backupCount=config.backup_count,
                encoding='utf-8'
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            self._add(root_logger, file_handler)

            error_handler = logging.handlers.RotatingFileHandler(
                os.path.join(config.log_dir, "socketchat_errors.log"),
                maxBytes=config.max_bytes,
                backupCount=config.backup_count,
                encoding='utf-8'
            )
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(formatter)
            self._add(root_logger, error_handler)

        for component, component_level in config.component_levels.items():
            logging.getLogger(component).setLevel(getattr(logging, component_level.upper()))

        logging.getLogger(__name__).debug("Logging configured with level %s", config.level)

    def _add(self, root_logger: logging.Logger, handler: logging.Handler) -> None:
        root_logger.addHandler(handler)
        self._handlers.append(handler)


_logging_manager = LoggingManager()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def configure_logging(config: LogConfig) -> None:
    _logging_manager.configure(config)


def get_logging_manager() -> LoggingManager:
    return _logging_manager


def create_development_config() -> LogConfig:
    return LogConfig(
        level="DEBUG",
        log_dir="./logs/dev",
        file_output=True,
        max_bytes=5 * 1024 * 1024,
        backup_count=3,
        format_string=get_detailed_format(),
        component_levels={
            "websockets": "WARNING",
            "uvicorn.access": "WARNING",
        }
    )


def create_production_config() -> LogConfig:
    return LogConfig(
        level="INFO",
        log_dir="./logs/prod",
        console_output=True,
        json_output=True,
        file_output=True,
        max_bytes=50 * 1024 * 1024,
        backup_count=10,
        format_string=get_detailed_format(),
        component_levels={
            "websockets": "ERROR",
            "uvicorn.access": "WARNING",
        }
    )


def create_testing_config() -> LogConfig:
    return LogConfig(
        level="DEBUG",
        console_output=True,
        file_output=False,
        format_string="%(levelname)s - %(name)s - %(message)s",
        component_levels={
            "websockets": "ERROR",
        }
    )


def auto_configure(env: Optional[str] = None) -> str:
    """
    Configure logging from a named preset.

    Args:
        env: development, production or testing (and their short forms).
             Defaults to ``SOCKETCHAT_ENV``.

    Returns:
        The environment name that was applied
    """
    if env is None:
        env = os.environ.get("SOCKETCHAT_ENV", "development")
    env = env.lower()

    presets = {
        "development": create_development_config,
        "dev": create_development_config,
        "production": create_production_config,
        "prod": create_production_config,
        "testing": create_testing_config,
        "test": create_testing_config,
    }
    configure_logging(presets.get(env, create_development_config)())
    get_logger(__name__).info("Logging auto-configured for environment: %s", env)
    return env


__all__ = [
    'LogConfig',
    'LoggingManager',
    'ColoredFormatter',
    'JsonFormatter',
    'get_logger',
    'configure_logging',
    'get_logging_manager',
    'create_development_config',
    'create_production_config',
    'create_testing_config',
    'auto_configure',
    'get_default_format',
    'get_detailed_format',
]
