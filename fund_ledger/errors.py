"""
Ledger Error Types

The ledger engine hands these back inside a LedgerResult instead of raising
them; the service and API layers raise or translate them as needed.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for ledger failures"""

    code = "ledger_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        result = {"error": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(LedgerError):
    """Malformed or out-of-range input; nothing was changed"""
    code = "validation_error"


class NotFoundError(LedgerError):
    """Referenced account or installment does not exist"""
    code = "not_found"


class NoChangeError(LedgerError):
    """Input equals the current state; a successful no-op"""
    code = "no_change"


class ImportValidationError(ValidationError):
    """An interchange batch failed validation; the whole batch is rejected"""

    def __init__(self, message: str, index: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if index is not None:
            details.setdefault("index", index)
        super().__init__(message, details)
        self.index = index
