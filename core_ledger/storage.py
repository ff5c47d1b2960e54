"""
Storage Backend Module

Provides the account/ledger storage contract and implementations for
in-memory (testing), SQLite and PostgreSQL. Amounts are stored as integers
in minor currency units.

The balance adjustment is a single conditional update guarded by the limit
invariant and the 64-bit balance ceiling; callers group the adjustment and
the ledger append with ``atomic()`` so both commit or neither does.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union
import logging
import sqlite3
import threading

from .accounts import AMOUNT_MAX, Account, AccountBalance
from .errors import AccountNotFoundError, StorageFailureError
from .ledger import Direction, LedgerEntry


logger = logging.getLogger(__name__)


class StorageInterface(ABC):
    """Abstract interface for account and ledger storage backends"""

    @abstractmethod
    def create_account(self, account: Account) -> bool:
        """Insert an account unless its id exists; True if inserted"""
        pass

    @abstractmethod
    def get_account(self, account_id: int) -> AccountBalance:
        """Read balance and limit in one read; AccountNotFoundError if unknown"""
        pass

    @abstractmethod
    def try_adjust_balance(self, account_id: int, delta: int) -> Optional[AccountBalance]:
        """
        Add ``delta`` to the balance only if ``balance + delta + limit >= 0``
        and the new balance stays within ``AMOUNT_MAX``.

        The check and the update are one atomic step. Returns the new balance
        and limit, or None when either bound rejects the adjustment.
        """
        pass

    @abstractmethod
    def append_entry(self, account_id: int, magnitude: int, direction: Direction,
                     description: str, recorded_at: datetime) -> int:
        """Append a ledger entry and return its id"""
        pass

    @abstractmethod
    def recent_entries(self, account_id: int, limit: int) -> List[LedgerEntry]:
        """Most recent entries for an account, newest first"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
        except BaseException:
            self.rollback()
            raise
        self.commit()


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._accounts: Dict[int, Account] = {}
        self._entries: Dict[int, List[LedgerEntry]] = {}
        self._next_entry_id = 1
        self._lock = threading.RLock()

    def create_account(self, account: Account) -> bool:
        with self._lock:
            if account.id in self._accounts:
                return False
            # Copy to prevent external mutation
            self._accounts[account.id] = replace(account)
            self._entries[account.id] = []
            return True

    def get_account(self, account_id: int) -> AccountBalance:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            return AccountBalance(balance=account.balance, limit=account.limit)

    def try_adjust_balance(self, account_id: int, delta: int) -> Optional[AccountBalance]:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            if account.available + delta < 0 or account.balance + delta > AMOUNT_MAX:
                return None
            new_balance = account.balance + delta
            account.balance = new_balance
            return AccountBalance(balance=new_balance, limit=account.limit)

    def append_entry(self, account_id: int, magnitude: int, direction: Direction,
                     description: str, recorded_at: datetime) -> int:
        with self._lock:
            if account_id not in self._accounts:
                raise AccountNotFoundError(account_id)
            entry = LedgerEntry(
                id=self._next_entry_id,
                account_id=account_id,
                magnitude=magnitude,
                direction=direction,
                description=description,
                recorded_at=recorded_at,
            )
            self._next_entry_id += 1
            self._entries[account_id].append(entry)
            return entry.id

    def recent_entries(self, account_id: int, limit: int) -> List[LedgerEntry]:
        with self._lock:
            entries = self._entries.get(account_id, [])
            ordered = sorted(entries, key=lambda e: (e.recorded_at, e.id), reverse=True)
            return ordered[:limit]

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Hold the lock for the whole block and restore state on failure"""
        with self._lock:
            balances = {aid: acc.balance for aid, acc in self._accounts.items()}
            entry_counts = {aid: len(entries) for aid, entries in self._entries.items()}
            next_entry_id = self._next_entry_id
            try:
                yield
            except BaseException:
                # Accounts created inside the block go away with it
                for aid in set(self._accounts) - set(balances):
                    del self._accounts[aid]
                    del self._entries[aid]
                for aid, balance in balances.items():
                    self._accounts[aid].balance = balance
                for aid, count in entry_counts.items():
                    del self._entries[aid][count:]
                self._next_entry_id = next_entry_id
                raise

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


def _adjust_guard(delta: int, placeholder: str) -> Tuple[str, int]:
    """WHERE condition and bound for a conditional adjust; no term overflows 64 bits"""
    if delta >= 0:
        # A credit cannot break the limit, only the balance ceiling
        return f"balance <= {placeholder}", AMOUNT_MAX - delta
    # balance + delta + limit >= 0, rearranged
    return f"balance >= {placeholder} - credit_limit", -delta


def _to_utc_text(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS accounts (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            balance INTEGER NOT NULL DEFAULT 0,
            credit_limit INTEGER NOT NULL CHECK (credit_limit >= 0),
            created_at TEXT NOT NULL,
            CHECK (balance >= -credit_limit)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS ledger (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            account_id INTEGER NOT NULL REFERENCES accounts(id),
            magnitude INTEGER NOT NULL CHECK (magnitude >= 0),
            direction TEXT NOT NULL CHECK (direction IN ('c', 'd')),
            description TEXT NOT NULL,
            recorded_at TEXT NOT NULL
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_ledger_account_recorded
        ON ledger(account_id, recorded_at DESC, id DESC)
        """,
    )

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # Autocommit mode; atomic() issues BEGIN/COMMIT explicitly
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._in_transaction = False

        with self._guard():
            self._connection.execute("PRAGMA foreign_keys = ON")
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
            for statement in self.SCHEMA:
                self._connection.execute(statement)

    @contextmanager
    def _guard(self) -> Iterator[sqlite3.Connection]:
        """Serialize access to the connection and wrap driver errors"""
        with self._lock:
            if self._connection is None:
                raise StorageFailureError("SQLite storage is closed")
            try:
                yield self._connection
            except (sqlite3.Error, OverflowError) as e:
                # sqlite3 raises OverflowError for ints outside 64 bits
                raise StorageFailureError(f"SQLite error: {e}", e) from e

    def create_account(self, account: Account) -> bool:
        with self._guard() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO accounts (id, name, balance, credit_limit, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (account.id, account.name, account.balance, account.limit,
                 _to_utc_text(account.created_at)),
            )
            return cursor.rowcount > 0

    def get_account(self, account_id: int) -> AccountBalance:
        with self._guard() as conn:
            row = conn.execute(
                "SELECT balance, credit_limit FROM accounts WHERE id = ?",
                (account_id,),
            ).fetchone()
        if row is None:
            raise AccountNotFoundError(account_id)
        return AccountBalance(balance=row["balance"], limit=row["credit_limit"])

    def try_adjust_balance(self, account_id: int, delta: int) -> Optional[AccountBalance]:
        guard, bound = _adjust_guard(delta, "?")
        with self._guard() as conn:
            cursor = conn.execute(
                f"UPDATE accounts SET balance = balance + ? WHERE id = ? AND {guard}",
                (delta, account_id, bound),
            )
            if cursor.rowcount == 0:
                # Distinguish a rejected adjustment from an unknown account
                self.get_account(account_id)
                return None
            # Same connection under the same lock: no other writer in between
            return self.get_account(account_id)

    def append_entry(self, account_id: int, magnitude: int, direction: Direction,
                     description: str, recorded_at: datetime) -> int:
        with self._guard() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO ledger (account_id, magnitude, direction, description, recorded_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (account_id, magnitude, direction.value, description,
                     _to_utc_text(recorded_at)),
                )
            except sqlite3.IntegrityError as e:
                if "FOREIGN KEY" in str(e):
                    raise AccountNotFoundError(account_id) from e
                raise
            return cursor.lastrowid

    def recent_entries(self, account_id: int, limit: int) -> List[LedgerEntry]:
        with self._guard() as conn:
            rows = conn.execute(
                """
                SELECT id, account_id, magnitude, direction, description, recorded_at
                FROM ledger
                WHERE account_id = ?
                ORDER BY recorded_at DESC, id DESC
                LIMIT ?
                """,
                (account_id, limit),
            ).fetchall()
        return [
            LedgerEntry(
                id=row["id"],
                account_id=row["account_id"],
                magnitude=row["magnitude"],
                direction=Direction(row["direction"]),
                description=row["description"],
                recorded_at=datetime.fromisoformat(row["recorded_at"]),
            )
            for row in rows
        ]

    def begin_transaction(self) -> None:
        """Start a write transaction, taking the database write lock up front"""
        with self._guard() as conn:
            if not self._in_transaction:
                conn.execute("BEGIN IMMEDIATE")
                self._in_transaction = True

    def commit(self) -> None:
        """Commit current transaction"""
        with self._guard() as conn:
            if self._in_transaction:
                try:
                    conn.execute("COMMIT")
                except sqlite3.Error:
                    conn.rollback()
                    raise
                finally:
                    self._in_transaction = False

    def rollback(self) -> None:
        """Rollback current transaction"""
        with self._guard() as conn:
            if self._in_transaction:
                try:
                    conn.rollback()
                finally:
                    self._in_transaction = False

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Hold the connection lock for the whole transaction"""
        with self._lock:
            if self._in_transaction:
                # Nested block joins the outer transaction
                yield
                return
            self.begin_transaction()
            try:
                yield
            except BaseException:
                self.rollback()
                raise
            self.commit()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


class PostgreSQLStorage(StorageInterface):
    """PostgreSQL storage backend with a threaded connection pool"""

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS accounts (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            balance BIGINT NOT NULL DEFAULT 0,
            credit_limit BIGINT NOT NULL CHECK (credit_limit >= 0),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK (balance >= -credit_limit)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS ledger (
            id BIGSERIAL PRIMARY KEY,
            account_id INTEGER NOT NULL REFERENCES accounts(id),
            magnitude BIGINT NOT NULL CHECK (magnitude >= 0),
            direction CHAR(1) NOT NULL CHECK (direction IN ('c', 'd')),
            description VARCHAR(10) NOT NULL,
            recorded_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_ledger_account_recorded
        ON ledger(account_id, recorded_at DESC, id DESC)
        """,
    )

    def __init__(self, connection_string: str, min_conns: int = 1, max_conns: int = 10):
        try:
            import psycopg2
            import psycopg2.errors
            import psycopg2.extras
            import psycopg2.pool
            self.psycopg2 = psycopg2
            self.extras = psycopg2.extras
        except ImportError:
            raise ImportError("psycopg2 is required for PostgreSQL storage. Install with: pip install psycopg2-binary")

        self.connection_string = connection_string
        self._local = threading.local()
        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                min_conns,
                max_conns,
                connection_string,
                cursor_factory=self.extras.RealDictCursor,
            )
        except psycopg2.Error as e:
            raise StorageFailureError(f"PostgreSQL connection failed: {e}", e) from e

        with self._cursor() as cursor:
            for statement in self.SCHEMA:
                cursor.execute(statement)

    @contextmanager
    def _connection(self):
        """Connection bound by atomic(), or a pooled one committed on exit"""
        bound = getattr(self._local, "connection", None)
        if bound is not None:
            yield bound
            return

        conn = self._pool.getconn()
        try:
            yield conn
        except BaseException:
            self._safe_rollback(conn)
            raise
        else:
            conn.commit()
        finally:
            self._pool.putconn(conn)

    @contextmanager
    def _cursor(self):
        try:
            with self._connection() as conn:
                with conn.cursor() as cursor:
                    yield cursor
        except self.psycopg2.Error as e:
            raise StorageFailureError(f"PostgreSQL error: {e}", e) from e

    def _safe_rollback(self, conn) -> None:
        try:
            conn.rollback()
        except self.psycopg2.Error as e:
            logger.warning("Rollback failed: %s", e)

    def create_account(self, account: Account) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO accounts (id, name, balance, credit_limit, created_at)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (id) DO NOTHING
                """,
                (account.id, account.name, account.balance, account.limit, account.created_at),
            )
            return cursor.rowcount > 0

    def get_account(self, account_id: int) -> AccountBalance:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT balance, credit_limit FROM accounts WHERE id = %s",
                (account_id,),
            )
            row = cursor.fetchone()
        if row is None:
            raise AccountNotFoundError(account_id)
        return AccountBalance(balance=row["balance"], limit=row["credit_limit"])

    def try_adjust_balance(self, account_id: int, delta: int) -> Optional[AccountBalance]:
        guard, bound = _adjust_guard(delta, "%s")
        with self._cursor() as cursor:
            # Evaluated under the row lock taken by UPDATE
            cursor.execute(
                f"""
                UPDATE accounts SET balance = balance + %s
                WHERE id = %s AND {guard}
                RETURNING balance, credit_limit
                """,
                (delta, account_id, bound),
            )
            row = cursor.fetchone()
            if row is None:
                cursor.execute("SELECT 1 FROM accounts WHERE id = %s", (account_id,))
                if cursor.fetchone() is None:
                    raise AccountNotFoundError(account_id)
                return None
        return AccountBalance(balance=row["balance"], limit=row["credit_limit"])

    def append_entry(self, account_id: int, magnitude: int, direction: Direction,
                     description: str, recorded_at: datetime) -> int:
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    """
                    INSERT INTO ledger (account_id, magnitude, direction, description, recorded_at)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (account_id, magnitude, direction.value, description, recorded_at),
                )
                return cursor.fetchone()["id"]
        except StorageFailureError as e:
            if isinstance(e.original_error, self.psycopg2.errors.ForeignKeyViolation):
                raise AccountNotFoundError(account_id) from e
            raise

    def recent_entries(self, account_id: int, limit: int) -> List[LedgerEntry]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, account_id, magnitude, direction, description, recorded_at
                FROM ledger
                WHERE account_id = %s
                ORDER BY recorded_at DESC, id DESC
                LIMIT %s
                """,
                (account_id, limit),
            )
            rows = cursor.fetchall()
        return [
            LedgerEntry(
                id=row["id"],
                account_id=row["account_id"],
                magnitude=row["magnitude"],
                direction=Direction(row["direction"]),
                description=row["description"],
                recorded_at=row["recorded_at"],
            )
            for row in rows
        ]

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Bind one pooled connection to this thread for the whole block"""
        if getattr(self._local, "connection", None) is not None:
            yield
            return

        try:
            conn = self._pool.getconn()
        except self.psycopg2.Error as e:
            raise StorageFailureError(f"PostgreSQL connection failed: {e}", e) from e

        self._local.connection = conn
        try:
            yield
        except BaseException:
            self._safe_rollback(conn)
            raise
        else:
            try:
                conn.commit()
            except self.psycopg2.Error as e:
                self._safe_rollback(conn)
                raise StorageFailureError(f"PostgreSQL commit failed: {e}", e) from e
        finally:
            self._local.connection = None
            self._pool.putconn(conn)

    def close(self) -> None:
        """Close all pooled PostgreSQL connections"""
        if self._pool is not None and not self._pool.closed:
            self._pool.closeall()


def create_storage(database_url: str, min_conns: int = 1, max_conns: int = 10) -> StorageInterface:
    """
    Create a storage backend from a database URL.

    Supported forms:
        memory://                      in-memory storage
        sqlite://  or sqlite:///:memory:   in-memory SQLite database
        sqlite:///path/to/ledger.db    SQLite file (relative path)
        sqlite:////abs/path/ledger.db  SQLite file (absolute path)
        postgresql://... / postgres://...   PostgreSQL
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()

    if database_url.startswith("sqlite://"):
        path = database_url[len("sqlite://"):]
        if path.startswith("/"):
            path = path[1:]
        return SQLiteStorage(path or ":memory:")

    if database_url.startswith(("postgresql://", "postgres://")):
        return PostgreSQLStorage(database_url, min_conns=min_conns, max_conns=max_conns)

    raise ValueError(f"Unsupported database URL: {database_url}")
