# =============================================================================
# Logging Configuration
# =============================================================================
#
# One stdout handler on the root logger; every module logs through
# `logging.getLogger(__name__)`. Called from create_app() and, through the
# Celery setup_logging signal, in worker processes.
# =============================================================================

import logging
import sys

from app.config import settings

_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Libraries that log every HTTP call at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "urllib3", "chromadb")


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())

    if not any(getattr(h, "_plagcheck", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._plagcheck = True
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
