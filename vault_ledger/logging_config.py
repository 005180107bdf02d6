"""
Structured Logging Configuration Module

Provides JSON-formatted structured logging for all ledger operations.
Ledger records carry the vault or goal they touched and the amount moved
as top-level keys, so a log search can follow one vault's money.
"""

import logging
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Union

from .money import Money


LEDGER_FIELDS = ("owner_id", "action", "resource", "vault_id", "goal_id", "amount")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured ledger logging"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in LEDGER_FIELDS:
            log_entry[field] = getattr(record, field, None)
        log_entry["extra"] = getattr(record, 'extra', None)

        # Remove None values
        log_entry = {k: v for k, v in log_entry.items() if v is not None}

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(
    level: str = "INFO",
    logger_name: str = "vault_ledger",
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Setup structured JSON logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Name of the logger
        log_file: Optional file path; logs go to stderr when omitted

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if log_file:
        handler = logging.FileHandler(log_file)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))

    # Prevent propagation to avoid duplicate logs
    logger.propagate = False

    return logger


def get_logger(name: str = "vault_ledger") -> logging.Logger:
    """Get logger instance"""
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               owner_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None,
               vault_id: Optional[str] = None, goal_id: Optional[str] = None,
               amount: Optional[Union[Money, Decimal]] = None):
    """
    Log a ledger action with structured data.

    Args:
        logger: Logger instance
        level: Log level (info, warning, error, etc.)
        message: Log message
        owner_id: ID of the vault owner the action belongs to
        action: Action being performed
        resource: Resource being acted upon
        extra: Additional structured data
        vault_id: Vault whose balance the action changed
        goal_id: Goal the action changed
        amount: Amount moved; written as a decimal string
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(
        logger.name, levelno,
        __name__, 0, message, (), None
    )

    if owner_id:
        record.owner_id = owner_id
    if action:
        record.action = action
    if resource:
        record.resource = resource
    if vault_id:
        record.vault_id = vault_id
    if goal_id:
        record.goal_id = goal_id
    if amount is not None:
        record.amount = str(amount.amount if isinstance(amount, Money) else amount)
    if extra:
        record.extra = extra

    logger.handle(record)
