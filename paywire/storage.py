"""
Storage Backend Module

Provides the transactional repository contract the ledger engine relies on,
and two implementations: in-memory (testing) and SQLite (persistence).

Serialization of conflicting transfers is the repository's job. A unit of
work is isolated from every other unit, and the debit is a conditional write
that only succeeds while `balance - amount >= 0` holds at write time.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterator, List, Optional
import re
import sqlite3
import threading

from .errors import AlreadyExists, StorageFailure
from .models import Account, Role, TransferRecord
from .money import from_minor_units, to_minor_units
from .logging_config import get_logger


logger = get_logger("paywire.storage")

_TABLE_PREFIX_RE = re.compile(r'^[A-Za-z0-9_]*$')


@dataclass(frozen=True)
class RepositorySettings:
    """
    Construction-time repository options.

    Attributes:
        database_path: SQLite file path, or ":memory:" for a private in-process database
        table_prefix: Prepended to every table name (letters, digits, underscore)
        timeout: Seconds a unit of work waits for the database write lock
    """
    database_path: str = ":memory:"
    table_prefix: str = ""
    timeout: float = 30.0

    def __post_init__(self):
        if not _TABLE_PREFIX_RE.match(self.table_prefix):
            raise ValueError(f"Invalid table prefix: {self.table_prefix!r}")
        if self.timeout < 0:
            raise ValueError("Timeout cannot be negative")

    @property
    def accounts_table(self) -> str:
        return f"{self.table_prefix}account"

    @property
    def transfers_table(self) -> str:
        return f"{self.table_prefix}transfer"

    @classmethod
    def from_config(cls, config) -> 'RepositorySettings':
        """Build settings from a PaywireConfig"""
        return cls(
            database_path=config.database_path,
            table_prefix=config.table_prefix,
            timeout=config.database_timeout,
        )


class UnitOfWork(ABC):
    """
    Operations available inside one atomic unit.

    Everything done through a unit commits together when the unit's block
    exits normally and is rolled back when an exception escapes it.
    """

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        """Read an account as seen by this unit"""
        pass

    @abstractmethod
    def get_balance(self, account_id: int) -> Optional[Decimal]:
        """Read the current balance as seen by this unit"""
        pass

    @abstractmethod
    def debit_if_sufficient(self, account_id: int, amount: Decimal) -> bool:
        """
        Conditional debit. Returns False, changing nothing, when the account
        is missing or the balance would drop below zero.
        """
        pass

    @abstractmethod
    def credit(self, account_id: int, amount: Decimal) -> bool:
        """Unconditional credit. Returns False when the account is missing."""
        pass

    @abstractmethod
    def insert_transfer(self, record: TransferRecord) -> TransferRecord:
        """Append a transfer record; returns it with its assigned id"""
        pass


class TransferRepository(ABC):
    """Abstract interface for ledger storage backends"""

    @abstractmethod
    def atomic(self):
        """Context manager yielding a UnitOfWork"""
        pass

    @abstractmethod
    def create_account(self, role: Role, email: str, name: str,
                       password_hash: str, balance: Decimal) -> Account:
        """
        Insert a new account

        Raises:
            AlreadyExists: If the email is already registered
        """
        pass

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        pass

    @abstractmethod
    def get_account_by_email(self, email: str) -> Optional[Account]:
        pass

    @abstractmethod
    def get_transfer(self, transfer_id: int) -> Optional[TransferRecord]:
        pass

    @abstractmethod
    def list_recent_transfers(self, account_id: int, limit: int) -> List[TransferRecord]:
        """Transfers sent or received by the account, newest (highest id) first"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass


class _InMemoryUnit(UnitOfWork):

    def __init__(self, repo: 'InMemoryTransferRepository'):
        self._repo = repo

    def get_account(self, account_id: int) -> Optional[Account]:
        account = self._repo._accounts.get(account_id)
        return replace(account) if account else None

    def get_balance(self, account_id: int) -> Optional[Decimal]:
        account = self._repo._accounts.get(account_id)
        return account.balance if account else None

    def debit_if_sufficient(self, account_id: int, amount: Decimal) -> bool:
        account = self._repo._accounts.get(account_id)
        if account is None or account.balance - amount < 0:
            return False
        account.balance = account.balance - amount
        return True

    def credit(self, account_id: int, amount: Decimal) -> bool:
        account = self._repo._accounts.get(account_id)
        if account is None:
            return False
        account.balance = account.balance + amount
        return True

    def insert_transfer(self, record: TransferRecord) -> TransferRecord:
        self._repo._last_transfer_id += 1
        stored = replace(record, id=self._repo._last_transfer_id)
        self._repo._transfers[stored.id] = stored
        return stored


class InMemoryTransferRepository(TransferRepository):
    """
    In-memory repository for testing.

    Units of work are serialized by the store lock; a failed unit restores
    the balances and transfer log captured when it started.
    """

    def __init__(self):
        self._accounts: Dict[int, Account] = {}
        self._transfers: Dict[int, TransferRecord] = {}
        self._last_account_id = 0
        self._last_transfer_id = 0
        self._lock = threading.RLock()

    @contextmanager
    def atomic(self) -> Iterator[UnitOfWork]:
        with self._lock:
            balances = {aid: acc.balance for aid, acc in self._accounts.items()}
            last_transfer_id = self._last_transfer_id
            try:
                yield _InMemoryUnit(self)
            except BaseException:
                for aid, balance in balances.items():
                    if aid in self._accounts:
                        self._accounts[aid].balance = balance
                for tid in range(last_transfer_id + 1, self._last_transfer_id + 1):
                    self._transfers.pop(tid, None)
                self._last_transfer_id = last_transfer_id
                raise

    def create_account(self, role: Role, email: str, name: str,
                       password_hash: str, balance: Decimal) -> Account:
        with self._lock:
            if any(acc.email == email for acc in self._accounts.values()):
                raise AlreadyExists(f"Account with email {email} already exists")
            self._last_account_id += 1
            account = Account(
                id=self._last_account_id,
                role=role,
                email=email,
                name=name,
                password_hash=password_hash,
                balance=balance,
                created_at=datetime.now(timezone.utc),
            )
            self._accounts[account.id] = account
            return replace(account)

    def get_account(self, account_id: int) -> Optional[Account]:
        with self._lock:
            account = self._accounts.get(account_id)
            # Copy to prevent external mutation
            return replace(account) if account else None

    def get_account_by_email(self, email: str) -> Optional[Account]:
        with self._lock:
            for account in self._accounts.values():
                if account.email == email:
                    return replace(account)
            return None

    def get_transfer(self, transfer_id: int) -> Optional[TransferRecord]:
        with self._lock:
            return self._transfers.get(transfer_id)

    def list_recent_transfers(self, account_id: int, limit: int) -> List[TransferRecord]:
        if limit <= 0:
            return []
        with self._lock:
            matching = [t for t in self._transfers.values() if t.involves(account_id)]
        matching.sort(key=lambda t: t.id, reverse=True)
        return matching[:limit]

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class _SQLiteUnit(UnitOfWork):

    def __init__(self, repo: 'SQLiteTransferRepository', connection: sqlite3.Connection):
        self._repo = repo
        self._connection = connection
        self._accounts = repo.settings.accounts_table
        self._transfers = repo.settings.transfers_table

    def get_account(self, account_id: int) -> Optional[Account]:
        with _storage_errors("get_account"):
            row = self._connection.execute(
                f"SELECT * FROM {self._accounts} WHERE id = ?", (account_id,)
            ).fetchone()
        return _account_from_row(row) if row else None

    def get_balance(self, account_id: int) -> Optional[Decimal]:
        with _storage_errors("get_balance"):
            row = self._connection.execute(
                f"SELECT balance FROM {self._accounts} WHERE id = ?", (account_id,)
            ).fetchone()
        return from_minor_units(row['balance']) if row else None

    def debit_if_sufficient(self, account_id: int, amount: Decimal) -> bool:
        units = to_minor_units(amount)
        with _storage_errors("debit"):
            cursor = self._connection.execute(
                f"UPDATE {self._accounts} SET balance = balance - ? "
                f"WHERE id = ? AND balance - ? >= 0",
                (units, account_id, units),
            )
        return cursor.rowcount == 1

    def credit(self, account_id: int, amount: Decimal) -> bool:
        with _storage_errors("credit"):
            cursor = self._connection.execute(
                f"UPDATE {self._accounts} SET balance = balance + ? WHERE id = ?",
                (to_minor_units(amount), account_id),
            )
        return cursor.rowcount == 1

    def insert_transfer(self, record: TransferRecord) -> TransferRecord:
        with _storage_errors("insert_transfer"):
            cursor = self._connection.execute(
                f"""
                INSERT INTO {self._transfers} (
                    created_at, sender_id, recipient_id, magnitude,
                    sender_balance_before, sender_balance_after,
                    recipient_balance_before, recipient_balance_after
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.created_at.isoformat(),
                    record.sender_id,
                    record.recipient_id,
                    to_minor_units(record.magnitude),
                    to_minor_units(record.sender_balance_before),
                    to_minor_units(record.sender_balance_after),
                    to_minor_units(record.recipient_balance_before),
                    to_minor_units(record.recipient_balance_after),
                ),
            )
        return replace(record, id=cursor.lastrowid)


class SQLiteTransferRepository(TransferRepository):
    """
    SQLite repository for persistence.

    File databases open one connection per unit of work and take the write
    lock up front (BEGIN IMMEDIATE), so concurrent units from any thread or
    process are serialized by SQLite itself. A ":memory:" database lives in a
    single connection shared under a lock.
    Money columns hold integer minor units.
    """

    def __init__(self, settings: Optional[RepositorySettings] = None):
        self.settings = settings or RepositorySettings()
        self._lock = threading.RLock()
        self._shared: Optional[sqlite3.Connection] = None
        if self.settings.database_path == ":memory:":
            self._shared = self._open()
        self._ensure_schema()

    def _open(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are started explicitly
        connection = sqlite3.connect(
            self.settings.database_path,
            timeout=self.settings.timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        connection.row_factory = sqlite3.Row
        return connection

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        if self._shared is not None:
            with self._lock:
                yield self._shared
            return
        with _storage_errors("connect"):
            connection = self._open()
        try:
            yield connection
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        accounts = self.settings.accounts_table
        transfers = self.settings.transfers_table
        with self._connect() as conn, _storage_errors("ensure_schema"):
            if self.settings.database_path != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {accounts} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    role INTEGER NOT NULL DEFAULT 1,
                    email TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    password_hash TEXT NOT NULL,
                    balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0),
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{accounts}_name
                ON {accounts}(name)
            """)
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {transfers} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TEXT NOT NULL,
                    sender_id INTEGER NOT NULL,
                    recipient_id INTEGER NOT NULL,
                    magnitude INTEGER NOT NULL CHECK (magnitude > 0),
                    sender_balance_before INTEGER NOT NULL,
                    sender_balance_after INTEGER NOT NULL,
                    recipient_balance_before INTEGER NOT NULL,
                    recipient_balance_after INTEGER NOT NULL
                )
            """)
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{transfers}_sender_id
                ON {transfers}(sender_id)
            """)
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{transfers}_recipient_id
                ON {transfers}(recipient_id)
            """)

    @contextmanager
    def atomic(self) -> Iterator[UnitOfWork]:
        with self._connect() as conn:
            with _storage_errors("begin"):
                conn.execute("BEGIN IMMEDIATE")
            try:
                yield _SQLiteUnit(self, conn)
                with _storage_errors("commit"):
                    conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    try:
                        conn.execute("ROLLBACK")
                    except sqlite3.Error:
                        logger.exception("Rollback failed")
                raise

    def create_account(self, role: Role, email: str, name: str,
                       password_hash: str, balance: Decimal) -> Account:
        created_at = datetime.now(timezone.utc)
        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    f"""
                    INSERT INTO {self.settings.accounts_table}
                        (role, email, name, password_hash, balance, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (int(role), email, name, password_hash,
                     to_minor_units(balance), created_at.isoformat()),
                )
            except sqlite3.IntegrityError as e:
                raise AlreadyExists(f"Account with email {email} already exists") from e
            except (sqlite3.Error, OverflowError) as e:
                raise StorageFailure(f"create_account: {e}") from e
        return Account(
            id=cursor.lastrowid,
            role=role,
            email=email,
            name=name,
            password_hash=password_hash,
            balance=balance,
            created_at=created_at,
        )

    def get_account(self, account_id: int) -> Optional[Account]:
        with self._connect() as conn, _storage_errors("get_account"):
            row = conn.execute(
                f"SELECT * FROM {self.settings.accounts_table} WHERE id = ?",
                (account_id,),
            ).fetchone()
        return _account_from_row(row) if row else None

    def get_account_by_email(self, email: str) -> Optional[Account]:
        with self._connect() as conn, _storage_errors("get_account_by_email"):
            row = conn.execute(
                f"SELECT * FROM {self.settings.accounts_table} WHERE email = ?",
                (email,),
            ).fetchone()
        return _account_from_row(row) if row else None

    def get_transfer(self, transfer_id: int) -> Optional[TransferRecord]:
        with self._connect() as conn, _storage_errors("get_transfer"):
            row = conn.execute(
                f"SELECT * FROM {self.settings.transfers_table} WHERE id = ?",
                (transfer_id,),
            ).fetchone()
        return _transfer_from_row(row) if row else None

    def list_recent_transfers(self, account_id: int, limit: int) -> List[TransferRecord]:
        if limit <= 0:
            return []
        with self._connect() as conn, _storage_errors("list_recent_transfers"):
            rows = conn.execute(
                f"""
                SELECT * FROM {self.settings.transfers_table}
                WHERE sender_id = ? OR recipient_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (account_id, account_id, limit),
            ).fetchall()
        return [_transfer_from_row(row) for row in rows]

    def close(self) -> None:
        """Close the shared connection, if any"""
        with self._lock:
            if self._shared is not None:
                self._shared.close()
                self._shared = None


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Re-raise driver errors as StorageFailure, keeping the cause"""
    try:
        yield
    except (sqlite3.Error, OverflowError) as e:
        raise StorageFailure(f"sqlite {operation}: {e}") from e


def _account_from_row(row: sqlite3.Row) -> Account:
    return Account(
        id=row['id'],
        role=Role(row['role']),
        email=row['email'],
        name=row['name'],
        password_hash=row['password_hash'],
        balance=from_minor_units(row['balance']),
        created_at=datetime.fromisoformat(row['created_at']),
    )


def _transfer_from_row(row: sqlite3.Row) -> TransferRecord:
    return TransferRecord(
        id=row['id'],
        created_at=datetime.fromisoformat(row['created_at']),
        sender_id=row['sender_id'],
        recipient_id=row['recipient_id'],
        magnitude=from_minor_units(row['magnitude']),
        sender_balance_before=from_minor_units(row['sender_balance_before']),
        sender_balance_after=from_minor_units(row['sender_balance_after']),
        recipient_balance_before=from_minor_units(row['recipient_balance_before']),
        recipient_balance_after=from_minor_units(row['recipient_balance_after']),
    )


def create_repository(settings: RepositorySettings) -> TransferRepository:
    """Build the SQLite repository described by settings"""
    return SQLiteTransferRepository(settings)
