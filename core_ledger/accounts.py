"""
Account Module

Accounts hold a signed balance and a non-negative overdraft limit, both in
minor currency units. The invariant ``balance + limit >= 0`` is kept by the
storage layer's conditional adjust; nothing else mutates a balance.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, List, Optional

from .errors import AccountNotFoundError
from .ledger import utc_now

if TYPE_CHECKING:
    from .storage import StorageInterface


# Largest value a BIGINT balance, limit or magnitude column holds
AMOUNT_MAX = 2 ** 63 - 1


@dataclass
class Account:
    """Customer account with an overdraft limit"""
    id: int
    name: str
    limit: int
    balance: int = 0
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if self.limit < 0:
            raise ValueError("Account limit must be non-negative")
        if self.limit > AMOUNT_MAX or not -AMOUNT_MAX <= self.balance <= AMOUNT_MAX:
            raise ValueError("Account amounts must fit in 64 bits")
        if self.balance + self.limit < 0:
            raise ValueError("Account balance exceeds its limit")

    @property
    def available(self) -> int:
        """Amount that can still be debited"""
        return self.balance + self.limit


@dataclass(frozen=True)
class AccountBalance:
    """Balance and limit taken from a single read of an account"""
    balance: int
    limit: int


# Fixed account set of the reference deployment
DEFAULT_ACCOUNTS: List[Account] = [
    Account(id=1, name="o barato sai caro", limit=1000 * 100),
    Account(id=2, name="zan corp ltda", limit=800 * 100),
    Account(id=3, name="les cruders", limit=10000 * 100),
    Account(id=4, name="padaria joia de cocaia", limit=100000 * 100),
    Account(id=5, name="kid mais", limit=5000 * 100),
]


def is_account_id(value: Any) -> bool:
    """True for plain ints; bools are rejected"""
    return isinstance(value, int) and not isinstance(value, bool)


def ensure_account(storage: "StorageInterface", account_id: Any,
                   account_ids: Optional[range] = None) -> AccountBalance:
    """
    Resolve an account id to its current balance, failing closed.

    The ``account_ids`` range is a fast path that rejects out-of-domain ids
    without touching storage; in-range ids are still confirmed by the store.

    Raises:
        AccountNotFoundError: id is not an int, is outside ``account_ids``,
            or is unknown to the store
    """
    if not is_account_id(account_id):
        raise AccountNotFoundError(account_id)
    if account_ids is not None and account_id not in account_ids:
        raise AccountNotFoundError(account_id)
    return storage.get_account(account_id)


def seed_accounts(storage: "StorageInterface", accounts: Iterable[Account]) -> int:
    """Create any missing accounts; returns how many were created"""
    created = 0
    for account in accounts:
        if storage.create_account(account):
            created += 1
    return created
