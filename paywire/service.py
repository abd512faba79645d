"""
Transfer Service

Composition root for one request: the bearer token is validated into an
account, the authorization gate checks the operation, the ledger engine
executes it, and results are projected for the caller.
"""

from typing import List, Optional, Tuple

from .accounts import AccountManager, PasswordHasher
from .authorization import AuthorizationGate, Operation
from .config import PaywireConfig
from .errors import Unauthorized
from .ledger import LedgerEngine
from .models import Account, TransferRecord
from .money import AmountLike
from .projection import CensoredTransfer, project
from .storage import RepositorySettings, TransferRepository, create_repository
from .tokens import TokenAuthority, TokenSettings
from .logging_config import get_logger


logger = get_logger("paywire.service")

DEFAULT_HISTORY_LIMIT = 100


class TransferService:
    """Ledger and identity components wired together"""

    def __init__(
        self,
        repository: TransferRepository,
        token_authority: TokenAuthority,
        account_manager: Optional[AccountManager] = None,
        gate: Optional[AuthorizationGate] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT
    ):
        self.repository = repository
        self.token_authority = token_authority
        self.account_manager = account_manager or AccountManager(repository)
        self.gate = gate or AuthorizationGate()
        self.ledger = LedgerEngine(repository)
        self.history_limit = history_limit

    @classmethod
    def from_config(cls, config: PaywireConfig) -> 'TransferService':
        """Build every component from configuration"""
        repository = create_repository(RepositorySettings.from_config(config))
        account_manager = AccountManager(
            repository,
            password_hasher=PasswordHasher(),
            opening_balance=config.opening_balance,
            min_password_length=config.password_min_length
        )
        return cls(
            repository=repository,
            token_authority=TokenAuthority(TokenSettings.from_config(config)),
            account_manager=account_manager,
            history_limit=config.history_limit
        )

    # Identity

    def authenticate(self, token: Optional[str]) -> Account:
        """
        Account behind a bearer token

        Raises:
            Unauthorized: If the token is missing or invalid, or its account is gone
        """
        if not token:
            raise Unauthorized()
        subject = self.token_authority.discover_subject(token)
        if subject is None:
            raise Unauthorized()
        account = self.repository.get_account(subject)
        if account is None:
            raise Unauthorized()
        return account

    def login(self, email: str, password: str) -> str:
        """
        Raises:
            Unauthorized: If the credentials do not match an account
        """
        account = self.account_manager.authenticate(email, password)
        if account is None:
            raise Unauthorized("Unable to authorize with given credentials")
        return self.token_authority.issue_token(account.id, email=account.email)

    def register(self, email: str, name: str, password: str) -> Tuple[Account, str]:
        account = self.account_manager.register(email, name, password)
        return account, self.token_authority.issue_token(account.id, email=account.email)

    # Accounts

    def get_account(self, viewer: Account, account_id: int) -> Account:
        if account_id == viewer.id:
            self.gate.require(viewer, Operation.VIEW_OWN_ACCOUNT)
            return viewer
        # Gate first so a refusal says nothing about the target's existence
        self.gate.require(viewer, Operation.VIEW_OTHER_ACCOUNT)
        return self.account_manager.get_account(account_id)

    # Transfers

    def create_transfer(self, viewer: Account, recipient_id: int,
                        magnitude: AmountLike) -> TransferRecord:
        self.gate.require(viewer, Operation.CREATE_TRANSFER)
        return self.ledger.create_transfer(viewer.id, recipient_id, magnitude)

    def repeat_transfer(self, viewer: Account, transfer_id: int) -> TransferRecord:
        self.gate.require(viewer, Operation.REPEAT_TRANSFER)
        original = self.ledger.get_transfer(transfer_id)
        self.gate.require_party(viewer, original, sender_only=True)
        return self.ledger.repeat_transfer(original.id)

    def get_transfer(self, viewer: Account, transfer_id: int) -> CensoredTransfer:
        self.gate.require(viewer, Operation.VIEW_TRANSFER)
        record = self.ledger.get_transfer(transfer_id)
        self.gate.require_party(viewer, record)
        return project(viewer.id, record)

    def list_transfers(self, viewer: Account, limit: Optional[int] = None) -> List[CensoredTransfer]:
        self.gate.require(viewer, Operation.LIST_TRANSFERS)
        if limit is None or limit > self.history_limit:
            limit = self.history_limit
        records = self.ledger.list_recent(viewer.id, limit)
        return [project(viewer.id, record) for record in records]

    def close(self) -> None:
        self.repository.close()
