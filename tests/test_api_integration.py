"""
Integration tests for the Paywire API
Tests end-to-end workflows using FastAPI TestClient
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from paywire.accounts import AccountManager, PasswordHasher
from paywire.api import create_app
from paywire.config import PaywireConfig
from paywire.errors import StorageFailure
from paywire.models import Role
from paywire.service import TransferService
from paywire.storage import InMemoryTransferRepository
from paywire.tokens import TokenAuthority, TokenSettings


class BrokenTransferLog(InMemoryTransferRepository):
    """Transfer reads fail as if the database went away"""

    def get_transfer(self, transfer_id):
        raise StorageFailure("sqlite get_transfer: disk I/O error at /var/lib/paywire.db")

    def list_recent_transfers(self, account_id, limit):
        raise StorageFailure("sqlite list_recent_transfers: database is locked")


def build_service(repository) -> TransferService:
    return TransferService(
        repository=repository,
        token_authority=TokenAuthority(TokenSettings(secret="test-secret")),
        account_manager=AccountManager(repository, password_hasher=PasswordHasher(n=1024)),
    )


@pytest.fixture
def service():
    """Service over a fresh in-memory repository"""
    service = build_service(InMemoryTransferRepository())
    yield service
    service.close()


@pytest.fixture
def client(service):
    """Test client bound to the service"""
    app = create_app(service=service, config=PaywireConfig(database_path=":memory:"))
    return TestClient(app)


def auth_header(service: TransferService, account) -> dict:
    token = service.token_authority.issue_token(account.id, email=account.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def trusted(service):
    return service.account_manager.register(
        "alice@example.com", "Alice", "hunter2", role=Role.TRUSTED
    )


@pytest.fixture
def regular(service):
    return service.account_manager.register("bob@example.com", "Bob", "hunter2")


class TestHealthEndpoints:
    """Test basic health endpoint"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_request_id_generated(self, client):
        r = client.get("/health")
        assert len(r.headers["x-request-id"]) == 32

    def test_request_id_echoed(self, client):
        r = client.get("/users/me/", headers={"X-Request-ID": "trace-42"})
        assert r.status_code == 401
        assert r.headers["x-request-id"] == "trace-42"


class TestIdentityEndpoints:
    """Test registration, login and account views"""

    def test_register_returns_working_bearer(self, client):
        r = client.post("/register/", json={
            "email": "new@example.com", "password": "hunter2", "name": "New"
        })
        assert r.status_code == 200
        auth = r.json()["auth"]
        assert auth.startswith("Bearer ")

        me = client.get("/users/me/", headers={"Authorization": auth})
        assert me.status_code == 200
        user = me.json()["user"]
        assert user["email"] == "new@example.com"
        assert user["balance"] == "500.00"
        assert user["role"] == int(Role.REGULAR)
        assert "password_hash" not in user

    def test_register_short_password(self, client):
        r = client.post("/register/", json={
            "email": "new@example.com", "password": "1234", "name": "New"
        })
        assert r.status_code == 400
        assert r.json()["error"] is True

    def test_register_duplicate_email(self, client, regular):
        r = client.post("/register/", json={
            "email": "bob@example.com", "password": "hunter2", "name": "Bob"
        })
        assert r.status_code == 409

    def test_login(self, client, regular):
        r = client.post("/login/", json={"login": "bob@example.com", "password": "hunter2"})
        assert r.status_code == 200
        assert r.json()["auth"].startswith("Bearer ")

    def test_login_wrong_password(self, client, regular):
        r = client.post("/login/", json={"login": "bob@example.com", "password": "nope!"})
        assert r.status_code == 401
        assert r.headers["www-authenticate"] == "Bearer"

    def test_missing_token(self, client):
        assert client.get("/users/me/").status_code == 401

    def test_garbage_token(self, client):
        r = client.get("/users/me/", headers={"Authorization": "Bearer not.valid"})
        assert r.status_code == 401

    def test_token_for_deleted_subject(self, client, service):
        token = service.token_authority.issue_token(999)
        r = client.get("/users/me/", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401

    def test_view_other_account_requires_trust(self, client, service, trusted, regular):
        r = client.get(f"/users/{trusted.id}/", headers=auth_header(service, regular))
        assert r.status_code == 403

        r = client.get(f"/users/{regular.id}/", headers=auth_header(service, trusted))
        assert r.status_code == 200
        assert r.json()["user"]["email"] == "bob@example.com"

    def test_refusal_does_not_reveal_existence(self, client, service, trusted, regular):
        existing = client.get(f"/users/{trusted.id}/", headers=auth_header(service, regular))
        missing = client.get("/users/999/", headers=auth_header(service, regular))

        assert existing.status_code == missing.status_code == 403
        assert existing.json() == missing.json()

    def test_view_own_account_by_id(self, client, service, regular):
        r = client.get(f"/users/{regular.id}/", headers=auth_header(service, regular))
        assert r.status_code == 200

    def test_unknown_account_for_trusted(self, client, service, trusted):
        r = client.get("/users/999/", headers=auth_header(service, trusted))
        assert r.status_code == 404


class TestTransferEndpoints:
    """Test the transfer workflow end to end"""

    def test_create_and_view_transfer(self, client, service, trusted, regular):
        r = client.post(
            "/money/transfers/",
            json={"recipient_id": regular.id, "sum": "200"},
            headers=auth_header(service, trusted)
        )
        assert r.status_code == 200
        transfer_id = r.json()["id"]

        sender_view = client.get(
            f"/money/transfers/{transfer_id}/", headers=auth_header(service, trusted)
        ).json()["transaction"]
        assert sender_view["sum"] == "-200.00"
        assert sender_view["is_credit"] is False
        assert sender_view["balance_before"] == "500.00"
        assert sender_view["balance_after"] == "300.00"
        assert sender_view["user_id"] == str(regular.id)

        recipient_view = client.get(
            f"/money/transfers/{transfer_id}/", headers=auth_header(service, regular)
        ).json()["transaction"]
        assert recipient_view["sum"] == "200.00"
        assert recipient_view["is_credit"] is True
        assert recipient_view["balance_after"] == "700.00"
        assert recipient_view["user_id"] == str(trusted.id)

    def test_regular_account_cannot_send(self, client, service, trusted, regular):
        r = client.post(
            "/money/transfers/",
            json={"recipient_id": trusted.id, "sum": "10"},
            headers=auth_header(service, regular)
        )
        assert r.status_code == 403
        assert service.ledger.balance_of(regular.id) == Decimal('500.00')

    def test_insufficient_funds(self, client, service, trusted, regular):
        r = client.post(
            "/money/transfers/",
            json={"recipient_id": regular.id, "sum": "500.01"},
            headers=auth_header(service, trusted)
        )
        assert r.status_code == 409
        assert r.json()["message"] == "Insufficient funds"

    @pytest.mark.parametrize("amount", [
        "0", "-10", "abc", "1e30", "9" * 30, "100000000000000000", 1e30
    ])
    def test_invalid_sum(self, client, service, trusted, regular, amount):
        r = client.post(
            "/money/transfers/",
            json={"recipient_id": regular.id, "sum": amount},
            headers=auth_header(service, trusted)
        )
        assert r.status_code == 400
        assert r.json()["error"] is True
        assert service.ledger.balance_of(trusted.id) == Decimal('500.00')

    @pytest.mark.parametrize("amount", [200, 200.0, "200"])
    def test_sum_accepts_json_numbers(self, client, service, trusted, regular, amount):
        r = client.post(
            "/money/transfers/",
            json={"recipient_id": regular.id, "sum": amount},
            headers=auth_header(service, trusted)
        )
        assert r.status_code == 200
        assert service.ledger.balance_of(regular.id) == Decimal('700.00')

    def test_transfer_to_self(self, client, service, trusted):
        r = client.post(
            "/money/transfers/",
            json={"recipient_id": trusted.id, "sum": "1"},
            headers=auth_header(service, trusted)
        )
        assert r.status_code == 400
        assert r.json()["message"] == "Invalid recipient ID"

    def test_regular_transfer_to_self_is_forbidden_first(self, client, service, regular):
        r = client.post(
            "/money/transfers/",
            json={"recipient_id": regular.id, "sum": "1"},
            headers=auth_header(service, regular)
        )
        assert r.status_code == 403

    def test_unknown_recipient(self, client, service, trusted):
        r = client.post(
            "/money/transfers/",
            json={"recipient_id": 999, "sum": "1"},
            headers=auth_header(service, trusted)
        )
        assert r.status_code == 404

    def test_outsider_cannot_view_transfer(self, client, service, trusted, regular):
        carol = service.account_manager.register("carol@example.com", "Carol", "hunter2")
        record = service.ledger.create_transfer(trusted.id, regular.id, Decimal('5'))

        r = client.get(f"/money/transfers/{record.id}/", headers=auth_header(service, carol))
        assert r.status_code == 403

    def test_unknown_transfer(self, client, service, regular):
        r = client.get("/money/transfers/999/", headers=auth_header(service, regular))
        assert r.status_code == 404

    def test_list_newest_first_with_limit(self, client, service, trusted, regular):
        ids = [
            service.ledger.create_transfer(trusted.id, regular.id, Decimal('1')).id
            for _ in range(3)
        ]

        r = client.get("/money/transfers/?limit=2", headers=auth_header(service, regular))
        assert r.status_code == 200
        listed = [t["id"] for t in r.json()["transactions"]]
        assert listed == [str(i) for i in sorted(ids, reverse=True)[:2]]

    def test_list_limit_zero(self, client, service, trusted, regular):
        service.ledger.create_transfer(trusted.id, regular.id, Decimal('1'))
        r = client.get("/money/transfers/?limit=0", headers=auth_header(service, regular))
        assert r.json()["transactions"] == []

    def test_repeat_transfer(self, client, service, trusted, regular):
        original = service.ledger.create_transfer(trusted.id, regular.id, Decimal('100'))

        r = client.post(f"/money/transfers/{original.id}/", headers=auth_header(service, trusted))
        assert r.status_code == 200
        assert r.json()["id"] != str(original.id)
        assert service.ledger.balance_of(trusted.id) == Decimal('300.00')

    def test_repeat_requires_sender(self, client, service, trusted):
        other = service.account_manager.register(
            "dave@example.com", "Dave", "hunter2", role=Role.TRUSTED
        )
        original = service.ledger.create_transfer(other.id, trusted.id, Decimal('100'))

        # Recipient may view the transfer but not re-send it
        r = client.post(f"/money/transfers/{original.id}/", headers=auth_header(service, trusted))
        assert r.status_code == 403
        assert service.ledger.balance_of(other.id) == Decimal('400.00')


class TestStorageFailures:
    """Storage failures surface as a generic 500"""

    @pytest.fixture
    def broken_service(self):
        service = build_service(BrokenTransferLog())
        yield service
        service.close()

    def test_failure_detail_not_leaked(self, broken_service):
        client = TestClient(create_app(service=broken_service, config=PaywireConfig()))
        account = broken_service.account_manager.register("a@example.com", "A", "hunter2")
        headers = auth_header(broken_service, account)

        for path in ("/money/transfers/1/", "/money/transfers/"):
            r = client.get(path, headers=headers)
            assert r.status_code == 500
            assert r.json() == {"error": True, "message": "Cannot complete request now"}
            assert "disk" not in r.text
            assert "locked" not in r.text
