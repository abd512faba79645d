"""
Domain Records Module

Accounts, trust tiers and the append-only transfer record. All monetary
values are Decimal; ids are positive integers assigned by the repository.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from enum import IntEnum
from typing import Any, Dict


class Role(IntEnum):
    """
    Trust tiers, compared numerically.

    ANONYMOUS is never stored; it is the tier of a caller without a valid
    credential.
    """
    ANONYMOUS = 0
    REGULAR = 1   # New, not yet trusted account
    TRUSTED = 2   # Verified account, may move funds


def _serialize(data: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in data.items():
        if isinstance(value, Decimal):
            data[key] = str(value)
        elif isinstance(value, datetime):
            data[key] = value.isoformat()
        elif isinstance(value, Role):
            data[key] = int(value)
    return data


@dataclass
class Account:
    """Registered account. Balance is mutated only by the ledger engine."""
    id: int
    role: Role
    email: str
    name: str
    password_hash: str
    balance: Decimal
    created_at: datetime

    def __post_init__(self):
        self.role = Role(self.role)
        if self.role == Role.ANONYMOUS:
            raise ValueError("Stored accounts must be regular or trusted")
        if self.balance < 0:
            raise ValueError("Account balance cannot be negative")

    @property
    def is_trusted(self) -> bool:
        return self.role >= Role.TRUSTED

    def to_dict(self) -> Dict[str, Any]:
        """Public representation; the password hash is never included"""
        data = _serialize(asdict(self))
        del data['password_hash']
        return data


@dataclass(frozen=True)
class TransferRecord:
    """
    Immutable audit entry for one internal transfer.

    Direction is given by sender_id/recipient_id; magnitude is always positive.
    """
    id: int
    created_at: datetime
    sender_id: int
    recipient_id: int
    magnitude: Decimal
    sender_balance_before: Decimal
    sender_balance_after: Decimal
    recipient_balance_before: Decimal
    recipient_balance_after: Decimal

    def __post_init__(self):
        if self.magnitude <= 0:
            raise ValueError("Transfer magnitude must be positive")
        if self.sender_balance_after != self.sender_balance_before - self.magnitude:
            raise ValueError("Sender balances do not match transfer magnitude")
        if self.recipient_balance_after != self.recipient_balance_before + self.magnitude:
            raise ValueError("Recipient balances do not match transfer magnitude")

    def involves(self, account_id: int) -> bool:
        return account_id in (self.sender_id, self.recipient_id)
