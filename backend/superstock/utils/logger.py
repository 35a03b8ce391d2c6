"""
SuperStock - Logger Configuration
Centralized logging with loguru
"""
import sys
from pathlib import Path
from typing import Optional
from loguru import logger

from superstock.config import Settings, settings as default_settings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Install the console and file sinks.
    
    Safe to call more than once; existing sinks are replaced.
    """
    settings = settings or default_settings
    
    # Remove default handler
    logger.remove()
    
    logger.add(
        sys.stdout,
        colorize=True,
        format=CONSOLE_FORMAT,
        level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    )
    
    if not settings.LOG_TO_FILE:
        return
    
    log_path = Path(settings.LOG_DIR)
    log_path.mkdir(parents=True, exist_ok=True)
    
    # File handler for all logs
    logger.add(
        log_path / "app.log",
        rotation="10 MB",
        retention="30 days",
        compression="gz",
        format=FILE_FORMAT,
        level="DEBUG",
    )
    
    # File handler for errors only
    logger.add(
        log_path / "error.log",
        rotation="10 MB",
        retention="30 days",
        compression="gz",
        format=FILE_FORMAT,
        level="ERROR",
    )


def get_logger(name: str = __name__):
    """
    Get a logger instance with the specified name.
    
    Args:
        name: Logger name (usually __name__)
        
    Returns:
        Logger instance
    """
    return logger.bind(name=name)


__all__ = ["logger", "get_logger", "setup_logging"]
