"""structlog configuration for convergectl.

All log output goes to stderr; stdout is reserved for results. Events are
rendered for a console by default, or as JSON lines with ``--log-json``.

A ``--prepared`` invocation is the remote half of a dispatch: its stderr is
captured and relayed by the controller, so every event is tagged with the
machine's hostname.
"""

from __future__ import annotations

import logging
import socket
import sys

import structlog

# Third-party loggers that are chatty at INFO/DEBUG.
_QUIET_LIBRARIES = ("httpx", "httpcore", "sqlalchemy.engine")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _stderr_handler(log_json: bool) -> logging.Handler:
    renderer: structlog.types.Processor
    if log_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_processors(),
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    return handler


def configure_logging(
    *,
    verbose: bool = False,
    log_json: bool = False,
    prepared: bool = False,
) -> None:
    """Route structlog and stdlib logging through one stderr handler.

    Args:
        verbose: DEBUG for convergectl's own loggers; WARNING otherwise.
        log_json: JSON lines instead of the console renderer.
        prepared: Tag every event with ``host=<this machine>``.
    """
    structlog.configure(
        processors=[*_shared_processors(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    structlog.contextvars.clear_contextvars()
    if prepared:
        structlog.contextvars.bind_contextvars(host=socket.gethostname())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_stderr_handler(log_json))
    root.setLevel(logging.WARNING)

    logging.getLogger("convergectl").setLevel(logging.DEBUG if verbose else logging.WARNING)
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def host_logger(host: str) -> structlog.stdlib.BoundLogger:
    """Logger bound to one dispatch target; every event carries ``host=``."""
    return structlog.get_logger("convergectl.dispatch").bind(host=host)
