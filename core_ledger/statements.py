"""
Statement Module

Read-only snapshot of an account: current balance and limit plus its most
recent ledger entries, newest first.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Tuple

from .accounts import ensure_account
from .ledger import LedgerEntry, utc_now
from .storage import StorageInterface


DEFAULT_STATEMENT_SIZE = 10


@dataclass(frozen=True)
class StatementSnapshot:
    balance: int
    limit: int
    statement_at: datetime  # Time of computation, never stored
    entries: Tuple[LedgerEntry, ...]


class StatementService:
    """Builds account statements; never mutates storage"""

    def __init__(
        self,
        storage: StorageInterface,
        account_ids: Optional[range] = None,
        size: int = DEFAULT_STATEMENT_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ):
        if size < 1:
            raise ValueError("Statement size must be positive")
        self.storage = storage
        self.account_ids = account_ids
        self.size = size
        self.clock = clock

    def statement(self, account_id: Any) -> StatementSnapshot:
        """
        Raises:
            AccountNotFoundError: unknown or out-of-domain account
            StorageFailureError: the store failed
        """
        account = ensure_account(self.storage, account_id, self.account_ids)
        entries = self.storage.recent_entries(account_id, self.size)
        return StatementSnapshot(
            balance=account.balance,
            limit=account.limit,
            statement_at=self.clock(),
            entries=tuple(entries),
        )
