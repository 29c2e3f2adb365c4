"""Centralized logging setup using loguru."""
import sys
from loguru import logger
from ricemill.core.config import settings

# "{method} {path}" of the request being served, "-" outside requests
_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[request]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def setup_logging() -> None:
    """Configure loguru: coloured stderr plus a rotating file of postings and errors."""
    logger.remove()
    logger.configure(extra={"request": "-"})
    logger.add(sys.stderr, level=settings.LOG_LEVEL, format=_FORMAT, colorize=True)
    # Ledger audit trail: every posting, cancellation and balance change lands here
    logger.add(
        settings.LOG_FILE,
        level=settings.LOG_LEVEL,
        format=_FORMAT,
        colorize=False,
        rotation="10 MB",
        retention="30 days",
        compression="zip",
    )
