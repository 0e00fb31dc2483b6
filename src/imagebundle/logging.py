"""
Structured logging for imagebundle using structlog.
"""

import logging
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import structlog

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]

# The AWS SDK logs every request and retry at INFO/DEBUG
AWS_LIBRARY_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def _handler(handler: logging.Handler, renderer) -> logging.Handler:
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )
    return handler


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Path] = None,
    console_output: bool = True,
) -> None:
    """
    Route structlog and the AWS SDK loggers through the standard library handlers.

    SDK chatter is held at WARNING unless ``level`` is DEBUG, so a normal run
    only shows bundle events.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_output: Render console output as JSON lines instead of colored text
        log_file: Optional file that receives every record as JSON; parent
            directories are created
        console_output: Write records to stderr
    """
    numeric_level = getattr(logging, level.upper())

    structlog.configure(
        processors=_SHARED_PROCESSORS + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers = []
    if console_output:
        if json_output:
            renderer = structlog.processors.JSONRenderer()
        else:
            renderer = structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        handlers.append(_handler(logging.StreamHandler(sys.stderr), renderer))

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(_handler(logging.FileHandler(log_file), structlog.processors.JSONRenderer()))

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        handlers=handlers,
        force=True,
    )

    sdk_level = logging.NOTSET if numeric_level <= logging.DEBUG else logging.WARNING
    for name in AWS_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)


@contextmanager
def log_operation(logger, operation: str, **kwargs):
    """
    Log the start, end and duration of one bundle step.

    Usage:
        with log_operation(log, "snapshot", instance_id="i-123") as op_log:
            op_log.info("snapshot.requested", volume_id=volume_id)
    """
    op_log = logger.bind(operation=operation, **kwargs)
    started = time.monotonic()
    op_log.info(f"{operation}.started")

    try:
        yield op_log
    except Exception as e:
        op_log.error(
            f"{operation}.failed",
            error=str(e),
            error_type=type(e).__name__,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )
        raise

    op_log.info(
        f"{operation}.completed",
        duration_ms=round((time.monotonic() - started) * 1000, 2),
    )
