import logging.config

from feeledger.core.config import settings


def configure_logging(level: str = None) -> None:
    """Install the process-wide logging config. Module loggers use logging.getLogger(__name__)."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "feeledger": {
                    "handlers": ["console"],
                    "level": (level or settings.log_level).upper(),
                    "propagate": False,
                },
            },
        }
    )
