"""Rich console logging for the research pipeline.

setup_logging() is called once by the entry point; library modules only call
get_logger(), which namespaces them under the package logger.
"""

import logging
from typing import Optional

from rich.logging import RichHandler

from .config import get_settings

ROOT_LOGGER = "better_perplexity"

# Third-party loggers that drown out pipeline progress at INFO
NOISY_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "openai": logging.WARNING,
    "trafilatura": logging.ERROR,
    "mlflow": logging.WARNING,
}


def setup_logging(level: Optional[str] = None):
    """Configures the root handler. `level` overrides LOG_LEVEL (the CLI passes DEBUG for -v)."""
    level = (level or get_settings().LOG_LEVEL).upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, markup=False)],
        force=True,
    )

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
