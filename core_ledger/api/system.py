"""
Ledger system wiring and request dependencies
"""

from typing import Optional

from fastapi import Request

from ..accounts import DEFAULT_ACCOUNTS, seed_accounts
from ..config import LedgerConfig
from ..logging_config import get_logger, log_action
from ..statements import StatementService
from ..storage import StorageInterface, create_storage
from ..transactions import TransactionService


class LedgerSystem:
    """Storage handle plus the two services built on it"""

    def __init__(self, config: LedgerConfig, storage: Optional[StorageInterface] = None):
        self.config = config
        self.logger = get_logger("core_ledger.system")

        if storage is None:
            storage = create_storage(
                config.database_url,
                min_conns=config.db_min_conns,
                max_conns=config.db_max_conns,
            )
        self.storage = storage
        self.account_ids = config.account_ids

        if config.seed_accounts:
            created = seed_accounts(self.storage, DEFAULT_ACCOUNTS)
            if created:
                self.logger.info("Seeded %d default accounts", created)

        self.transactions = TransactionService(self.storage, self.account_ids)
        self.statements = StatementService(
            self.storage, self.account_ids, size=config.statement_size
        )

        log_action(
            self.logger, "info", "Ledger system initialized",
            action="startup",
            extra={
                "storage": type(self.storage).__name__,
                "db_min_conns": config.db_min_conns,
                "db_max_conns": config.db_max_conns,
                "account_ids": [self.account_ids.start, self.account_ids.stop - 1],
            },
        )

    def close(self) -> None:
        self.storage.close()


def get_ledger_system(request: Request) -> LedgerSystem:
    """Dependency returning the system owned by the running app"""
    return request.app.state.ledger
