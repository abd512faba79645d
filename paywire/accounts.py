"""
Account Management Module

Registration, password verification and account lookup. Balances are only
read here; the opening balance is the single write outside the ledger engine.
"""

from decimal import Decimal
from typing import Optional
import hashlib
import hmac
import secrets

from .errors import AccountNotFound, ValidationError
from .models import Account, Role
from .money import AmountLike, to_amount
from .storage import TransferRepository
from .logging_config import get_logger, log_action


logger = get_logger("paywire.accounts")

DEFAULT_OPENING_BALANCE = Decimal('500.00')
MIN_PASSWORD_LENGTH = 5


class PasswordHasher:
    """scrypt password hashing with a random per-password salt"""

    def __init__(self, n: int = 16384, r: int = 8, p: int = 1):
        self.n = n
        self.r = r
        self.p = p

    def _derive(self, password: str, salt: str) -> str:
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=self.n, r=self.r, p=self.p
        ).hex()

    def hash(self, password: str) -> str:
        """Returns `salt$hash`"""
        salt = secrets.token_hex(16)
        return f"{salt}${self._derive(password, salt)}"

    def verify(self, password: str, stored: str) -> bool:
        salt, sep, expected = stored.partition("$")
        if not sep or not salt or not expected:
            return False
        return hmac.compare_digest(self._derive(password, salt), expected)


class AccountManager:
    """
    Manages account registration and credential checks
    """

    def __init__(
        self,
        repository: TransferRepository,
        password_hasher: Optional[PasswordHasher] = None,
        opening_balance: AmountLike = DEFAULT_OPENING_BALANCE,
        min_password_length: int = MIN_PASSWORD_LENGTH
    ):
        self.repository = repository
        self.password_hasher = password_hasher or PasswordHasher()
        self.opening_balance = to_amount(opening_balance)
        self.min_password_length = min_password_length
        if self.opening_balance < 0:
            raise ValueError("Opening balance cannot be negative")

    def register(self, email: str, name: str, password: str,
                 role: Role = Role.REGULAR) -> Account:
        """
        Register a new account credited with the opening balance

        Args:
            email: Login address (unique)
            name: Display name
            password: Plain password, hashed before storage
            role: Trust tier; new accounts are regular unless stated otherwise

        Returns:
            Created Account

        Raises:
            ValidationError: If a field is empty or the password is too short
            AlreadyExists: If the email is taken
        """
        email = (email or "").strip().lower()
        name = (name or "").strip()
        if not email:
            raise ValidationError("Required email is empty")
        if not name:
            raise ValidationError("Required name is empty")
        if len(password or "") < self.min_password_length:
            raise ValidationError(
                f"Password length must be {self.min_password_length} or greater"
            )
        if role == Role.ANONYMOUS:
            raise ValidationError("Accounts must be regular or trusted")

        account = self.repository.create_account(
            role=role,
            email=email,
            name=name,
            password_hash=self.password_hasher.hash(password),
            balance=self.opening_balance,
        )
        log_action(
            logger, "info", "Account registered",
            user_id=account.id, action="register", resource=f"account:{account.id}",
            extra={"role": account.role.name}
        )
        return account

    def authenticate(self, email: str, password: str) -> Optional[Account]:
        """Account matching the credentials, or None"""
        email = (email or "").strip().lower()
        if not email or not password:
            return None
        account = self.repository.get_account_by_email(email)
        if account is None or not self.password_hasher.verify(password, account.password_hash):
            log_action(logger, "info", "Login failed", action="login")
            return None
        return account

    def get_account(self, account_id: int) -> Account:
        """
        Raises:
            AccountNotFound: If no account has this ID
        """
        account = self.repository.get_account(account_id)
        if account is None:
            raise AccountNotFound(f"Account #{account_id} not found")
        return account
