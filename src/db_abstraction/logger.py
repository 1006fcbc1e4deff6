"""
Centralized logging for the database abstraction layer.

Configures console and rotating file output with masking of
credentials that may leak through connection strings.
"""

from __future__ import annotations

import logging
import logging.handlers
import re
import sys
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from time import perf_counter

type LogLevel = str | int

ROOT_LOGGER_NAME: str = 'db_abstraction'
DEFAULT_LOG_FORMAT: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_DATE_FORMAT: str = '%Y-%m-%d %H:%M:%S'
MAX_LOG_FILE_SIZE: int = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT: int = 3

# Patterns for masking sensitive data
SENSITIVE_PATTERNS: tuple[tuple[str, str], ...] = (
    (r"password[\"']?\s*[:=]\s*[\"']?([^\"'\s;]+)", r'password=***'),
    (r"pwd[\"']?\s*[:=]\s*[\"']?([^\"'\s;]+)", r'pwd=***'),
    (r"token[\"']?\s*[:=]\s*[\"']?([^\"'\s;]+)", r'token=***'),
    (r"secret[\"']?\s*[:=]\s*[\"']?([^\"'\s;]+)", r'secret=***'),
    (r'(://[^:/@\s]+):[^@\s]*@', r'\1:***@'),
)


def setup_logging(
    log_level: LogLevel = 'INFO',
    log_file: str | Path | None = None,
    logger_name: str = ROOT_LOGGER_NAME,
    *,
    console_output: bool = True,
    mask_sensitive: bool = True,
) -> logging.Logger:
    """
    Configure logging with console and file support.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file (optional).
        logger_name: Logger name.
        console_output: Whether to output logs to console.
        mask_sensitive: Whether to mask sensitive data.

    Returns:
        Configured Logger object.

    Example:
        >>> logger = setup_logging('DEBUG', 'db.log')
        >>> logger.info('Registry built')
    """
    logger = logging.getLogger(logger_name)

    # Clear existing handlers (avoid duplication)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    numeric_level = _parse_log_level(log_level)
    logger.setLevel(numeric_level)

    formatter = logging.Formatter(fmt=DEFAULT_LOG_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    match (console_output, log_file):
        case (True, None):
            _add_console_handler(logger, formatter)
        case (False, str() | Path() as file):
            _add_file_handler(logger, formatter, file)
        case (True, str() | Path() as file):
            _add_console_handler(logger, formatter)
            _add_file_handler(logger, formatter, file)
        case (False, None):
            # Fallback: at least console
            _add_console_handler(logger, formatter)
            logger.warning('Logging not configured properly, using console')

    if mask_sensitive:
        sensitive_filter = _create_sensitive_filter()
        for handler in logger.handlers:
            handler.addFilter(sensitive_filter)

    logger.debug(
        'Logger %r configured with level %s',
        logger_name,
        logging.getLevelName(numeric_level),
    )

    return logger


def _parse_log_level(level: LogLevel) -> int:
    """
    Convert string logging level to numeric.

    Raises:
        ValueError: If level is invalid.
    """
    match level:
        case int() as numeric_level if numeric_level in {0, 10, 20, 30, 40, 50}:
            return numeric_level
        case str() as string_level:
            upper_level = string_level.upper()
            numeric = logging.getLevelNamesMapping().get(upper_level)
            if numeric is not None:
                return numeric
            raise ValueError(f'Invalid logging level: {level}')
        case _:
            raise ValueError(f'Unsupported logging level type: {type(level)}')


def _add_console_handler(
    logger: logging.Logger,
    formatter: logging.Formatter,
) -> None:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    if _supports_color():
        console_handler.setFormatter(_create_colored_formatter())

    logger.addHandler(console_handler)


def _add_file_handler(
    logger: logging.Logger,
    formatter: logging.Formatter,
    log_file: str | Path,
) -> None:
    """Add rotating file handler to logger."""
    file_path = Path(log_file)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        filename=file_path,
        maxBytes=MAX_LOG_FILE_SIZE,
        backupCount=BACKUP_COUNT,
        encoding='utf-8',
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def _supports_color() -> bool:
    return (
        hasattr(sys.stdout, 'isatty')
        and sys.stdout.isatty()
        and sys.platform != 'win32'  # Windows requires extra setup
    )


def _create_colored_formatter() -> logging.Formatter:
    """Create formatter with ANSI colors for level names."""
    colors = {
        'DEBUG': '\033[36m',  # Cyan
        'INFO': '\033[32m',  # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',  # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',
    }

    class ColoredFormatter(logging.Formatter):
        def format(self, record: logging.LogRecord) -> str:
            levelname = record.levelname
            if levelname in colors:
                original = record.levelname
                try:
                    record.levelname = f'{colors[levelname]}{levelname}{colors["RESET"]}'
                    return super().format(record)
                finally:
                    record.levelname = original
            return super().format(record)

    return ColoredFormatter(fmt=DEFAULT_LOG_FORMAT, datefmt=DEFAULT_DATE_FORMAT)


def mask_sensitive_text(text: str) -> str:
    """Replace passwords, tokens and URI credentials in ``text`` with ``***``."""
    for pattern, replacement in _COMPILED_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


_COMPILED_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), replacement)
    for pattern, replacement in SENSITIVE_PATTERNS
)


def _create_sensitive_filter() -> logging.Filter:
    """Create a logging.Filter instance that masks sensitive data."""

    class SensitiveDataFilter(logging.Filter):
        def filter(self, record: logging.LogRecord) -> bool:
            original_msg = record.getMessage()
            filtered_msg = mask_sensitive_text(original_msg)

            if filtered_msg != original_msg:
                record.msg = filtered_msg
                record.args = ()

            return True

    return SensitiveDataFilter()


def log_execution_time[**P, R](
    func: Callable[P, R],
) -> Callable[P, R]:
    """
    Decorator to log function execution time.

    Example:
        >>> @log_execution_time
        ... def build():
        ...     pass
    """

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        logger = get_logger('performance')

        func_name = func.__qualname__
        module_name = func.__module__

        logger.debug('Starting execution: %s.%s', module_name, func_name)
        start_time = perf_counter()

        try:
            result = func(*args, **kwargs)
        except Exception:
            elapsed_time = perf_counter() - start_time
            logger.debug(
                'Error in %s.%s after %.4fs',
                module_name,
                func_name,
                elapsed_time,
                exc_info=True,
            )
            raise
        else:
            elapsed_time = perf_counter() - start_time
            logger.info(
                'Completed: %s.%s (time: %.4fs)',
                module_name,
                func_name,
                elapsed_time,
            )
            return result

    return wrapper


def get_logger(
    name: str | None = None,
) -> logging.Logger:
    """
    Get logger by name.

    Args:
        name: Logger name. If None, returns the package root logger.

    Example:
        >>> logger = get_logger('registry')
        >>> logger.name
        'db_abstraction.registry'
    """
    if name is None:
        return logging.getLogger(ROOT_LOGGER_NAME)

    if name != ROOT_LOGGER_NAME and not name.startswith(f'{ROOT_LOGGER_NAME}.'):
        name = f'{ROOT_LOGGER_NAME}.{name}'

    return logging.getLogger(name)


def log_exception(
    logger: logging.Logger | None = None,
    message: str = 'An error occurred',
    level: int = logging.ERROR,
) -> None:
    """
    Log current exception with traceback.

    Example:
        >>> logger = get_logger()
        >>> try:  # doctest: +SKIP
        ...     service.select('missing.query')
        ... except QueryNotFoundError:
        ...     log_exception(logger, 'Lookup failed')
    """
    if logger is None:
        logger = get_logger()

    logger.log(level, message, exc_info=True)


def shutdown_logging() -> None:
    """Close all handlers and flush buffers."""
    logging.shutdown()
