import logging
import traceback
from typing import Optional


def setup_logging(level: int = logging.INFO, fmt: Optional[str] = None) -> None:
    """Configure root logging once. Subsequent calls are no-ops.
    If fmt is not provided, a sensible default is used.
    """
    if logging.getLogger().handlers:
        return
    format_str = fmt or '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
    logging.basicConfig(level=level, format=format_str)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module logger by name, after ensuring logging is configured."""
    setup_logging()
    return logging.getLogger(name) if name else logging.getLogger("image_retention")


def log_exception(logger: logging.Logger, message: str, exc: BaseException) -> None:
    """Log an unexpected exception with its type and full traceback.

    ActionableError already carries its own guidance and is logged as a plain
    error by the caller; this is for everything else.
    """
    logger.error(f"{message}: {type(exc).__name__}: {exc}")
    logger.error("Full traceback:\n" + "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
