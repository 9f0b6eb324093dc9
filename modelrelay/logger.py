import sys

from loguru import logger as _logger


def configure_logging(level: str = "INFO"):
    """Reset sinks and log to stderr at the given level."""
    _logger.remove()
    _logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    )
    return _logger


logger = _logger
