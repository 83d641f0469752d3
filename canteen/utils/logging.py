import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger import jsonlogger

# Set by RequestIDMiddleware for the duration of a request
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiokafka", "httpx", "httpcore")


class RequestIDFilter(logging.Filter):
    """Stamps records with the current request id unless the caller passed one in ``extra``."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()
        return True


def setup_logging(log_level: str = "INFO", service: str = "canteen-api") -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(request_id)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
            static_fields={"service": service},
        )
    )
    handler.addFilter(RequestIDFilter())
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
