"""
Logging Configuration
Console and rotating file sinks, plus the audit trail of workflow
transitions and the SLA trail written by the sweeper
"""

from loguru import logger
import sys
from pathlib import Path

from src.config.settings import settings

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"

SYSTEM_ACTOR = 0

_configured = False


def setup_logger():
    """
    Setup application logger with file and console output

    Sinks are installed once per process; later calls return the same logger.

    Returns:
        logger: Configured logger instance
    """
    global _configured
    if _configured:
        return logger

    # Remove default logger
    logger.remove()

    log_dir = Path(settings.LOG_FILE).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    # Console logging
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.LOG_LEVEL,
        colorize=True
    )

    # File logging - all logs
    logger.add(
        settings.LOG_FILE,
        format=FILE_FORMAT,
        level=settings.LOG_LEVEL,
        rotation="10 MB",
        retention="30 days",
        compression="zip"
    )

    # File logging - errors only (includes NotificationFailure)
    logger.add(
        log_dir / "error.log",
        format=FILE_FORMAT,
        level="ERROR",
        rotation="10 MB",
        retention="90 days",
        compression="zip"
    )

    # Audit trail of state transitions
    logger.add(
        log_dir / "audit.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {message}",
        filter=lambda record: "AUDIT" in record["extra"],
        rotation="10 MB",
        retention="365 days",
        compression="zip"
    )

    # SLA trail: breaches and warnings
    logger.add(
        log_dir / "sla.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
        filter=lambda record: "SLA" in record["extra"],
        rotation="10 MB",
        retention="365 days",
        compression="zip"
    )

    _configured = True
    return logger


def log_audit(user_id: int, action: str, details: str):
    """
    Log audit trail entry

    Args:
        user_id: User ID who performed the action (SYSTEM_ACTOR for the sweeper)
        action: Action performed, e.g. DECIDE or SLA_SWEEP
        details: Action details
    """
    logger.bind(AUDIT=True).info(f"USER_ID={user_id} | ACTION={action} | DETAILS={details}")


def log_sla_event(reference_number: str, level: str, event: str, details: str = ""):
    """
    Log an SLA breach or warning to the SLA trail

    Args:
        reference_number: Finance request reference
        level: Approval level name
        event: BREACH or WARNING
        details: Free text
    """
    logger.bind(SLA=True).warning(f"{event} | {reference_number} | {level} | {details}")
