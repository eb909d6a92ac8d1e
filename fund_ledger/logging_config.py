"""
Structured Logging Configuration Module

JSON-formatted structured logging for ledger operations. Every record can
carry the acting user, the ledger action, the account key and, for
installment-level operations, the due number and amount involved.
"""

import logging
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional


LEDGER_FIELDS = ('user_id', 'action', 'account', 'due_no', 'amount')

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(account)s] %(message)s"


class LedgerContextFilter(logging.Filter):
    """Give every record the ledger fields so plain-text formats never fail"""

    def filter(self, record):
        for name in LEDGER_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, None)
        if record.account is None:
            record.account = "-"
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "user_id": getattr(record, 'user_id', None),
            "action": getattr(record, 'action', None),
            "account": getattr(record, 'account', None),
            "due_no": getattr(record, 'due_no', None),
            "amount": getattr(record, 'amount', None),
            "extra": getattr(record, 'extra_data', None)
        }

        # "-" is the text-format placeholder for records without an account
        log_entry = {k: v for k, v in log_entry.items() if v is not None and v != "-"}

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "fund_ledger",
                  log_format: str = "json") -> logging.Logger:
    """
    Setup structured logging for the application.

    Library modules log through ``logging.getLogger(__name__)`` which places
    them under the ``fund_ledger`` logger configured here.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Name of the logger
        log_format: "json" for structured output, anything else for plain
            text tagged with the account key

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.addFilter(LedgerContextFilter())
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    return logger


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               account: Optional[str] = None, due_no: Optional[int] = None,
               amount: Any = None, extra: Optional[dict] = None):
    """
    Log a ledger action with structured data.

    Args:
        logger: Logger instance
        level: Log level (info, warning, error, etc.)
        message: Log message
        user_id: ID of the user performing the action
        action: Ledger action name, e.g. "collect_payment"
        account: Business key of the affected account
        due_no: Installment number for installment-level actions
        amount: Money involved; Decimals are logged as strings
        extra: Additional structured data
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(
        logger.name, levelno, __name__, 0, message, (), None
    )

    if user_id:
        record.user_id = user_id
    if action:
        record.action = action
    if account:
        record.account = account
    if due_no is not None:
        record.due_no = due_no
    if amount is not None:
        record.amount = str(amount) if isinstance(amount, Decimal) else amount
    if extra:
        record.extra_data = extra

    logger.handle(record)
