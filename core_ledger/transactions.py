"""
Transaction Processing Module

Applies a signed transaction to an account: validates the request, adjusts
the balance with the store's conditional update, and appends the ledger
entry. The adjustment and the append run in one storage transaction, so a
failure between them leaves neither behind.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from .accounts import AMOUNT_MAX, AccountBalance, ensure_account
from .errors import InvalidRequestError, LimitExceededError
from .ledger import Direction, utc_now
from .logging_config import get_logger, log_action
from .storage import StorageInterface


DESCRIPTION_MIN_LENGTH = 1
DESCRIPTION_MAX_LENGTH = 10


@dataclass(frozen=True)
class TransactionRequest:
    """A validated request, ready to be applied"""
    magnitude: int
    direction: Direction
    description: str

    @property
    def delta(self) -> int:
        return self.direction.signed(self.magnitude)

    @classmethod
    def validate(cls, magnitude: Any, direction: Any, description: Any) -> "TransactionRequest":
        """
        Check the request fields in order: magnitude, direction, description.

        Raises:
            InvalidRequestError: on the first field that fails
        """
        if isinstance(magnitude, bool) or not isinstance(magnitude, int):
            raise InvalidRequestError("Magnitude must be an integer", field="magnitude")
        if magnitude < 0:
            raise InvalidRequestError("Magnitude must be non-negative", field="magnitude")
        if magnitude > AMOUNT_MAX:
            raise InvalidRequestError("Magnitude is too large", field="magnitude")

        try:
            parsed_direction = Direction.parse(direction)
        except ValueError:
            raise InvalidRequestError(
                f"Direction must be 'c' or 'd', got {direction!r}", field="direction"
            )

        if not isinstance(description, str):
            raise InvalidRequestError("Description must be a string", field="description")
        if not DESCRIPTION_MIN_LENGTH <= len(description) <= DESCRIPTION_MAX_LENGTH:
            raise InvalidRequestError(
                f"Description must be {DESCRIPTION_MIN_LENGTH} to "
                f"{DESCRIPTION_MAX_LENGTH} characters",
                field="description",
            )

        return cls(magnitude=magnitude, direction=parsed_direction, description=description)


class TransactionService:
    """
    Applies transactions against accounts held in a storage backend.

    The store's conditional adjust is the only serialization point: concurrent
    requests for one account take effect in the order the store commits them.
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_ids: Optional[range] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.storage = storage
        self.account_ids = account_ids
        self.clock = clock
        self.logger = get_logger("core_ledger.transactions")

    def apply(self, account_id: Any, magnitude: Any, direction: Any,
              description: Any) -> AccountBalance:
        """
        Apply a credit or debit to an account.

        Args:
            account_id: Account to adjust
            magnitude: Unsigned amount in minor units
            direction: Direction member or wire code ("c" or "d")
            description: 1 to 10 characters

        Returns:
            The account's new balance and its limit

        Raises:
            AccountNotFoundError: unknown or out-of-domain account
            InvalidRequestError: invalid magnitude, direction or description
            LimitExceededError: the debit would take the balance below -limit,
                or the credit past AMOUNT_MAX
            StorageFailureError: the store failed; nothing was applied
        """
        ensure_account(self.storage, account_id, self.account_ids)
        request = TransactionRequest.validate(magnitude, direction, description)
        delta = request.delta

        with self.storage.atomic():
            result = self.storage.try_adjust_balance(account_id, delta)
            if result is None:
                log_action(
                    self.logger, "info",
                    f"Transaction rejected by limit on account {account_id}",
                    action="transaction_rejected",
                    resource=f"account:{account_id}",
                    extra={"delta": delta},
                )
                raise LimitExceededError(account_id, delta)

            entry_id = self.storage.append_entry(
                account_id,
                request.magnitude,
                request.direction,
                request.description,
                self.clock(),
            )

        log_action(
            self.logger, "debug",
            f"Transaction {entry_id} applied to account {account_id}",
            action="transaction_applied",
            resource=f"account:{account_id}",
            extra={"delta": delta, "balance": result.balance},
        )
        return result

    def credit(self, account_id: Any, magnitude: Any, description: Any) -> AccountBalance:
        """Convenience wrapper for a credit"""
        return self.apply(account_id, magnitude, Direction.CREDIT, description)

    def debit(self, account_id: Any, magnitude: Any, description: Any) -> AccountBalance:
        """Convenience wrapper for a debit"""
        return self.apply(account_id, magnitude, Direction.DEBIT, description)
