from __future__ import annotations

import logging

from clip_factory.config import LoggingSettings

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
NOISY_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def configure_logging(settings: LoggingSettings) -> None:
    """Configure process-wide logging once at startup."""

    level = getattr(logging, settings.level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format=settings.format or DEFAULT_LOG_FORMAT,
        force=True,
    )
    # storage client chatter stays at WARNING unless the app itself is quieter
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
