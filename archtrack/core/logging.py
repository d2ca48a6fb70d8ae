"""Logging setup for the API process."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str) -> None:
    """Configure root handler once and set package log level."""

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("archtrack").setLevel(level)
