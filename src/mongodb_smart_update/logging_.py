import logging
import os
import sys
from typing import Optional

import structlog


def _renderer():
    # LOG_FORMAT=json ships pass logs as one JSON object per line
    if os.environ.get('LOG_FORMAT', '').lower() == 'json':
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def _configure_structlog():
    """Route structlog through stdlib logging at LOG_LEVEL (INFO by default)."""
    level = getattr(logging, os.environ.get('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            _renderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None, cluster: Optional[str] = None, namespace: Optional[str] = None):
    """Return a structured logger, bound to the cluster it works on when given.

    Every line of a pass then carries ``cluster=`` (and ``namespace=``), so
    logs of several clusters reconciled by one process can be told apart.
    """
    if not getattr(get_logger, "_configured", False):
        _configure_structlog()
        get_logger._configured = True
    logger = structlog.get_logger(name)
    bound = {k: v for k, v in (('cluster', cluster), ('namespace', namespace)) if v}
    return logger.bind(**bound) if bound else logger
