"""
Ledger Entry Module

Append-only record of transactions applied to an account. Entries keep the
unsigned magnitude that was requested plus a direction; the signed effect on
the balance is derived from the direction.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Direction(Enum):
    """Direction of a ledger entry, valued by its wire code"""
    CREDIT = "c"  # Increases the balance
    DEBIT = "d"   # Decreases the balance

    @classmethod
    def parse(cls, value: Any) -> "Direction":
        """
        Resolve a Direction from a member or its exact wire code.

        Raises:
            ValueError: for anything other than "c", "d" or a member
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(value)
        raise ValueError(f"{value!r} is not a valid Direction")

    def signed(self, magnitude: int) -> int:
        """Signed balance delta for a magnitude in this direction"""
        return magnitude if self is Direction.CREDIT else -magnitude


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LedgerEntry:
    """One immutable recorded transaction against an account"""
    id: int
    account_id: int
    magnitude: int
    direction: Direction
    description: str
    recorded_at: datetime

    @property
    def delta(self) -> int:
        return self.direction.signed(self.magnitude)
