import logging
import sys

import structlog


def _coerce_level(level):
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def setup_logging(level="INFO"):
    """Configure structlog and uvicorn's access log for the service."""
    logging_level = _coerce_level(level)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=logging_level)

    access_formatter = logging.Formatter(
        "%(asctime)s %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    access_logger = logging.getLogger("uvicorn.access")
    if not access_logger.handlers:
        access_logger.addHandler(logging.StreamHandler(sys.stdout))
    for handler in access_logger.handlers:
        handler.setFormatter(access_formatter)
        handler.setLevel(logging_level)
    access_logger.setLevel(logging_level)

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
