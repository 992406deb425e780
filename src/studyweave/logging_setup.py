"""Root logger configuration for the CLI.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed once here by the entry point.
"""

from __future__ import annotations

import logging
import logging.config
import os

# Third-party loggers that are chatty at INFO.
_NOISY_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy", "httpx", "instructor")


def _resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    name = (level or os.getenv("LOG_LEVEL", "warning")).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.WARNING


def setup_logging(level: str | int | None = None) -> None:
    """Install a rich console handler on the root logger.

    Args:
        level: Logging level name or number. Defaults to ``LOG_LEVEL`` from
            the environment, or WARNING.
    """
    loglevel = _resolve_level(level)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "rich": {"format": "%(name)s: %(message)s", "datefmt": "[%X]"},
            },
            "handlers": {
                "console": {
                    "class": "rich.logging.RichHandler",
                    "formatter": "rich",
                    "level": loglevel,
                    "show_path": False,
                    "rich_tracebacks": True,
                },
            },
            "root": {"handlers": ["console"], "level": loglevel},
        }
    )

    third_party_level = logging.DEBUG if loglevel <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)
