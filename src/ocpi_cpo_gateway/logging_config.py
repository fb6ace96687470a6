"""Process-wide logging setup."""

import logging

from ocpi_cpo_gateway.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    """Apply `settings.log_level` to the root logger."""

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logging.getLogger("ocpi_cpo_gateway").setLevel(settings.log_level)


__all__ = ["LOG_FORMAT", "configure_logging"]
