"""
Tests for storage backends and unit-of-work support
"""

import os
import sqlite3
import tempfile
from decimal import Decimal

import pytest

from paywire.errors import AlreadyExists, StorageFailure
from paywire.models import Role
from paywire.storage import (
    InMemoryTransferRepository, RepositorySettings, SQLiteTransferRepository,
    create_repository
)


@pytest.fixture
def temp_db_path():
    """Path to a fresh SQLite file inside a temporary directory"""
    with tempfile.TemporaryDirectory() as directory:
        yield os.path.join(directory, "paywire.db")


@pytest.fixture(params=["memory", "sqlite"])
def repository(request):
    """Each backend in turn"""
    if request.param == "memory":
        repo = InMemoryTransferRepository()
    else:
        repo = SQLiteTransferRepository(RepositorySettings())
    yield repo
    repo.close()


def add_account(repo, email="alice@example.com", balance="100.00", role=Role.REGULAR):
    return repo.create_account(role, email, email.split("@")[0], "salt$hash", Decimal(balance))


class TestRepositorySettings:
    """Test settings validation"""

    def test_defaults(self):
        settings = RepositorySettings()
        assert settings.database_path == ":memory:"
        assert settings.accounts_table == "account"
        assert settings.transfers_table == "transfer"

    def test_prefix_applied_to_table_names(self):
        settings = RepositorySettings(table_prefix="pw_")
        assert settings.accounts_table == "pw_account"
        assert settings.transfers_table == "pw_transfer"

    @pytest.mark.parametrize("prefix", ["pw-", "x; DROP TABLE account;", "a b", "p."])
    def test_invalid_prefix_rejected(self, prefix):
        with pytest.raises(ValueError):
            RepositorySettings(table_prefix=prefix)

    def test_negative_timeout_rejected(self):
        with pytest.raises(ValueError):
            RepositorySettings(timeout=-1)

    def test_from_config(self):
        class Config:
            database_path = "ledger.db"
            table_prefix = "t_"
            database_timeout = 5.0

        settings = RepositorySettings.from_config(Config())
        assert settings == RepositorySettings("ledger.db", "t_", 5.0)


class TestAccounts:
    """Account creation and lookup on every backend"""

    def test_create_and_get(self, repository):
        created = add_account(repository, role=Role.TRUSTED)

        assert created.id > 0
        loaded = repository.get_account(created.id)
        assert loaded.email == "alice@example.com"
        assert loaded.role == Role.TRUSTED
        assert loaded.balance == Decimal('100.00')
        assert loaded.password_hash == "salt$hash"

    def test_get_by_email(self, repository):
        created = add_account(repository)
        assert repository.get_account_by_email("alice@example.com").id == created.id
        assert repository.get_account_by_email("nobody@example.com") is None

    def test_missing_account(self, repository):
        assert repository.get_account(42) is None

    def test_duplicate_email_rejected(self, repository):
        add_account(repository)
        with pytest.raises(AlreadyExists):
            add_account(repository)

    def test_returned_account_is_a_copy(self, repository):
        created = add_account(repository)
        loaded = repository.get_account(created.id)
        loaded.balance = Decimal('1000000.00')

        assert repository.get_account(created.id).balance == Decimal('100.00')


class TestUnitOfWork:
    """Conditional debit, credit and rollback on every backend"""

    def test_conditional_debit_refused_changes_nothing(self, repository):
        account = add_account(repository, balance="50.00")

        with repository.atomic() as unit:
            assert not unit.debit_if_sufficient(account.id, Decimal('50.01'))
            assert unit.get_balance(account.id) == Decimal('50.00')

        assert repository.get_account(account.id).balance == Decimal('50.00')

    def test_debit_to_exactly_zero(self, repository):
        account = add_account(repository, balance="50.00")

        with repository.atomic() as unit:
            assert unit.debit_if_sufficient(account.id, Decimal('50.00'))

        assert repository.get_account(account.id).balance == Decimal('0.00')

    def test_missing_accounts(self, repository):
        with repository.atomic() as unit:
            assert unit.get_account(99) is None
            assert unit.get_balance(99) is None
            assert not unit.debit_if_sufficient(99, Decimal('1'))
            assert not unit.credit(99, Decimal('1'))

    def test_exception_rolls_back_unit(self, repository):
        account = add_account(repository, balance="50.00")

        with pytest.raises(RuntimeError):
            with repository.atomic() as unit:
                unit.credit(account.id, Decimal('25.00'))
                raise RuntimeError("abort")

        assert repository.get_account(account.id).balance == Decimal('50.00')

    def test_list_recent_non_positive_limit(self, repository):
        add_account(repository)
        assert repository.list_recent_transfers(1, 0) == []
        assert repository.list_recent_transfers(1, -3) == []


class TestSQLiteRepository:
    """SQLite-specific behaviour"""

    def test_tables_use_prefix(self, temp_db_path):
        repo = SQLiteTransferRepository(
            RepositorySettings(database_path=temp_db_path, table_prefix="pw_")
        )
        add_account(repo)
        repo.close()

        conn = sqlite3.connect(temp_db_path)
        try:
            tables = {
                row[0] for row in conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table'"
                )
            }
        finally:
            conn.close()
        assert {"pw_account", "pw_transfer"} <= tables
        assert "account" not in tables

    def test_data_survives_reopen(self, temp_db_path):
        settings = RepositorySettings(database_path=temp_db_path)
        repo = SQLiteTransferRepository(settings)
        created = add_account(repo, balance="12.34")
        repo.close()

        reopened = create_repository(settings)
        loaded = reopened.get_account(created.id)
        assert loaded.balance == Decimal('12.34')
        assert loaded.email == created.email
        reopened.close()

    def test_balances_stored_as_integer_cents(self, temp_db_path):
        repo = SQLiteTransferRepository(RepositorySettings(database_path=temp_db_path))
        add_account(repo, balance="12.34")

        conn = sqlite3.connect(temp_db_path)
        try:
            (balance,) = conn.execute("SELECT balance FROM account").fetchone()
        finally:
            conn.close()
        assert balance == 1234

    def test_negative_balance_blocked_by_schema(self, temp_db_path):
        SQLiteTransferRepository(RepositorySettings(database_path=temp_db_path))

        conn = sqlite3.connect(temp_db_path)
        try:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(
                    "INSERT INTO account (role, email, name, password_hash, balance, created_at) "
                    "VALUES (1, 'x@example.com', 'x', 'h', -1, '2024-01-01T00:00:00+00:00')"
                )
        finally:
            conn.close()

    def test_driver_errors_wrapped(self):
        repo = SQLiteTransferRepository(RepositorySettings())
        repo._shared.close()

        with pytest.raises(StorageFailure) as exc_info:
            repo.get_account(1)
        assert isinstance(exc_info.value.__cause__, sqlite3.Error)

    def test_out_of_range_integer_wrapped(self):
        repo = SQLiteTransferRepository(RepositorySettings())
        account = add_account(repo, balance="50.00")

        # 10**22 cents does not fit a 64-bit INTEGER column
        with pytest.raises(StorageFailure) as exc_info:
            with repo.atomic() as unit:
                unit.debit_if_sufficient(account.id, Decimal('1E+20'))
        assert isinstance(exc_info.value.__cause__, OverflowError)
        assert repo.get_account(account.id).balance == Decimal('50.00')
        repo.close()

    def test_missing_directory_is_storage_failure(self, temp_db_path):
        path = os.path.join(temp_db_path, "missing", "paywire.db")
        with pytest.raises(StorageFailure):
            SQLiteTransferRepository(RepositorySettings(database_path=path))
