"""
Ledger error taxonomy.

Every failure the services report is a LedgerError subclass carrying a
stable ``code``. The API boundary maps each class to a status code; the
services never catch their own errors.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for all ledger failures"""

    code = "LEDGER_ERROR"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)


class InvalidRequestError(LedgerError):
    """Malformed input: bad magnitude, direction or description"""

    code = "INVALID_REQUEST"

    def __init__(self, message: str, field: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None):
        self.field = field
        super().__init__(message, context)


class MalformedRequestError(InvalidRequestError):
    """Request body could not be parsed at all"""

    code = "MALFORMED_REQUEST"


class AccountNotFoundError(LedgerError):
    """Unknown or out-of-domain account id"""

    code = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: Any):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found", {"account_id": account_id})


class LimitExceededError(LedgerError):
    """Balance adjustment rejected by the overdraft limit"""

    code = "LIMIT_EXCEEDED"

    def __init__(self, account_id: int, delta: int):
        self.account_id = account_id
        self.delta = delta
        super().__init__(
            f"Adjusting account {account_id} by {delta} would exceed its limit",
            {"account_id": account_id, "delta": delta},
        )


class StorageFailureError(LedgerError):
    """Store unavailable or transaction aborted for infrastructure reasons"""

    code = "STORAGE_FAILURE"

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        self.original_error = original_error
        super().__init__(message)
