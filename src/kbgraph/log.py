"""Configuración de structlog para CLI y API."""

from __future__ import annotations

import logging
import sys

import structlog

from kbgraph.config import Settings


def _stderr_logger(*args: object) -> structlog.PrintLogger:
    # sys.stderr se lee en cada llamada: puede ser reemplazado (tests, CliRunner)
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(settings: Settings) -> None:
    """Configura structlog con nivel y renderer según settings.

    Con ``log_json`` se emite una línea JSON por evento (útil en contenedores);
    si no, se usa el renderer de consola de structlog.
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    renderer: structlog.types.Processor
    if settings.log_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )
