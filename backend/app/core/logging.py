"""Logging configuration."""

import logging
import sys

from app.core.config import settings

_RESERVED_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


class ExtraFormatter(logging.Formatter):
    """Formatter that appends `extra=` fields as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if not extras:
            return base
        pairs = " ".join(f"{key}={value}" for key, value in sorted(extras.items()))
        return f"{base} | {pairs}"


def setup_logging(level: str | None = None) -> None:
    """Configure root logging once for the process."""
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    # Avoid stacking handlers when called twice (API + Celery worker import)
    if any(getattr(h, "_trackerfi", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        ExtraFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    handler._trackerfi = True
    root.addHandler(handler)

    # Third-party loggers are noisy at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DEBUG else logging.WARNING
    )
