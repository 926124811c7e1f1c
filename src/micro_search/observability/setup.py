"""One-call observability bootstrap for applications embedding the engine."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from micro_search.config import Settings
from micro_search.observability.logging import configure_logging
from micro_search.observability.metrics import init_metrics
from micro_search.observability.tracing import SERVICE_NAME, init_tracing


if TYPE_CHECKING:
    from typing import TextIO


def setup_observability(
    settings: Settings | None = None,
    *,
    service_name: str = SERVICE_NAME,
    logger_levels: dict[str, str] | None = None,
    stream: TextIO | None = None,
) -> logging.Handler:
    """Configure logging from ``settings`` and initialize tracing and metrics.

    Returns the log handler installed on the root logger.
    """
    settings = settings or Settings()
    handler = configure_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        logger_levels=logger_levels,
        stream=stream,
    )
    init_metrics(service_name=service_name)
    init_tracing(service_name=service_name)
    logging.getLogger(__name__).debug("Observability initialized for %s", service_name)
    return handler
