# app/core/logging.py
import logging.config
from typing import Literal


def setup_logging(
    level: str = "INFO",
    fmt: Literal["plain", "json"] = "plain",
) -> None:
    """
    Configura el logging de la aplicación.

    `plain` para desarrollo; `json` (python-json-logger) para producción,
    donde los logs los consume el agregador de la plataforma.
    """
    use_json = fmt == "json"

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s [%(name)s]: %(message)s",
            },
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json" if use_json else "default",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {
            "handlers": ["console"],
            "level": level.upper(),
        },
    }

    logging.config.dictConfig(logging_config)
