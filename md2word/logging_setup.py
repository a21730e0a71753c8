# md2word/logging_setup.py

import logging

from .config import settings


def setup_logging() -> None:
    """Configure the root logger with a console handler.

    Guarded against duplicate handlers when the entry point module is re-imported.
    """
    root = logging.getLogger()
    if getattr(root, "_md2word_configured", False):
        return
    root._md2word_configured = True  # type: ignore[attr-defined]

    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root.setLevel(level)
    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(fmt)
    root.addHandler(console)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
