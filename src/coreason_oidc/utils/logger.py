# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

import logging
import os
import sys
from pathlib import Path
from typing import Any

from loguru import logger
from opentelemetry import trace

__all__ = ["logger", "configure_logging"]

LOG_LEVEL_ENV = "COREASON_OIDC_LOG_LEVEL"
LOG_JSON_ENV = "COREASON_OIDC_LOG_JSON"
LOG_DIR = Path("logs")

# Wire-level chatter from the HTTP stack is only useful when debugging
HTTP_LOGGERS = ("httpx", "httpcore")

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """
    Redirects standard logging messages to Loguru.
    httpx and authlib log through the standard library; this keeps their output in the same sinks.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno  # type: ignore[assignment]

        # Walk back to the frame that issued the stdlib call
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename in (logging.__file__, __file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def trace_id_injector(record: dict[str, Any]) -> None:
    """
    Loguru patcher adding the current OpenTelemetry trace and span ids to ``extra``.
    """
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        record["extra"]["trace_id"] = format(ctx.trace_id, "032x")
        record["extra"]["span_id"] = format(ctx.span_id, "016x")


def text_format(record: dict[str, Any]) -> str:
    """
    Console format; records emitted inside a span (a token request or an ID Token verification) end with
    their trace id.
    """
    if "trace_id" in record["extra"]:
        return TEXT_FORMAT + " | <magenta>trace={extra[trace_id]}</magenta>\n{exception}"
    return TEXT_FORMAT + "\n{exception}"


def _resolve_level() -> str:
    log_level = os.getenv(LOG_LEVEL_ENV, "INFO").upper()
    try:
        logger.level(log_level)
    except ValueError:
        return "INFO"
    return log_level


def configure_logging() -> None:
    """
    Configures the logger based on environment variables.

    ``COREASON_OIDC_LOG_LEVEL`` selects the level (unknown names fall back to INFO) and
    ``COREASON_OIDC_LOG_JSON=true`` switches the console sink to JSON on stdout.
    Safe to call repeatedly; previous sinks are replaced, never duplicated.
    """
    log_level = _resolve_level()
    log_json = os.getenv(LOG_JSON_ENV, "false").lower() == "true"

    logger.configure(handlers=[], patcher=trace_id_injector)

    if log_json:
        logger.add(sys.stdout, level=log_level, serialize=True)
    else:
        logger.add(sys.stderr, level=log_level, format=text_format)

    # File sink is best effort: read-only filesystems skip it
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        logger.add(
            LOG_DIR / "oidc.log",
            rotation="500 MB",
            retention="10 days",
            serialize=True,
            enqueue=True,
            level=log_level,
        )
    except OSError:
        pass

    # Loguru level numbers line up with the stdlib ones (TRACE=5, SUCCESS=25)
    level_no = logger.level(log_level).no
    logging.basicConfig(handlers=[InterceptHandler()], level=level_no, force=True)
    http_level = level_no if level_no <= logging.DEBUG else max(level_no, logging.WARNING)
    for name in HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)


configure_logging()
