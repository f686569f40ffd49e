# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Structured logging configuration using structlog.

Logs go to stderr (stdout is reserved for command output) as colored
console output in development and JSON otherwise. When the operations log
directory is writable, every record is also appended to
``<log_dir>/tenant-operations.log`` for audit.

Example:
    >>> import logging
    >>> from cdn_tenants.utils.logging import setup_logging, bind_context
    >>> from cdn_tenants.core.config import get_settings
    >>> setup_logging(get_settings())
    >>> bind_context(command="create", tenant="acme")
    >>> logging.getLogger(__name__).info("Allocated SFTP UID %d", 5000)
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from cdn_tenants.core.config.settings import Settings

OPERATIONS_LOG_NAME = "tenant-operations.log"


def setup_logging(settings: "Settings") -> None:
    """Configure structured logging for the application.

    Sets up structlog with appropriate processors based on environment:
    - Development: Colored console output with pretty formatting
    - Production: JSON output for log aggregation

    Args:
        settings: Application settings containing log_level and debug flag.
    """
    # Determine log level
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    # Common processors used in all environments
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development or settings.debug:
        renderer: Processor = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Standard library records (logging.getLogger(__name__)) are rendered by
    # the same processor chain.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    operations_log = _open_operations_log(settings)
    if operations_log is not None:
        handlers.append(operations_log)

    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # Set third-party loggers to WARNING to reduce noise
    for logger_name in ["httpx", "httpcore", "asyncio", "aiosmtplib"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    # Keep our loggers at configured level
    logging.getLogger("cdn_tenants").setLevel(log_level)


def _open_operations_log(settings: "Settings") -> logging.Handler | None:
    """Open the append-only operations log, if the log directory is usable."""
    if settings.dry_run:
        return None
    try:
        settings.paths.log_dir.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(settings.paths.log_dir / OPERATIONS_LOG_NAME)
    except OSError:
        return None


def bind_context(**kwargs: object) -> None:
    """Bind context variables to all subsequent log calls in this context.

    Args:
        **kwargs: Key-value pairs to bind to the logging context.

    Example:
        >>> bind_context(command="create", tenant="acme")
        >>> logger.info("Step 1/10: Allocating SFTP UID")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
