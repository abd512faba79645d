"""
Authorization Gate Module

Each ledger-adjacent operation declares the minimum trust tier it needs.
The gate runs before the ledger engine is touched, and its rejections carry
a fixed message so they never reveal whether a target account exists.
"""

from enum import Enum
from typing import Dict, Optional

from .errors import Forbidden
from .models import Account, Role, TransferRecord
from .logging_config import get_logger, log_action


logger = get_logger("paywire.authorization")


class Operation(Enum):
    """Gated operations"""
    CREATE_TRANSFER = "create_transfer"
    REPEAT_TRANSFER = "repeat_transfer"
    VIEW_TRANSFER = "view_transfer"
    LIST_TRANSFERS = "list_transfers"
    VIEW_OWN_ACCOUNT = "view_own_account"
    VIEW_OTHER_ACCOUNT = "view_other_account"


DEFAULT_REQUIREMENTS: Dict[Operation, Role] = {
    Operation.CREATE_TRANSFER: Role.TRUSTED,
    Operation.REPEAT_TRANSFER: Role.TRUSTED,
    Operation.VIEW_TRANSFER: Role.REGULAR,
    Operation.LIST_TRANSFERS: Role.REGULAR,
    Operation.VIEW_OWN_ACCOUNT: Role.REGULAR,
    Operation.VIEW_OTHER_ACCOUNT: Role.TRUSTED,
}


def role_of(account: Optional[Account]) -> Role:
    """Tier of a caller; ANONYMOUS without an authenticated account"""
    return account.role if account is not None else Role.ANONYMOUS


class AuthorizationGate:
    """Compares trust tiers against per-operation minimums"""

    def __init__(self, requirements: Optional[Dict[Operation, Role]] = None):
        self.requirements = dict(DEFAULT_REQUIREMENTS)
        if requirements:
            self.requirements.update(requirements)

    def required_role(self, operation: Operation) -> Role:
        return self.requirements[operation]

    def is_allowed(self, role: Role, operation: Operation) -> bool:
        return role >= self.required_role(operation)

    def require(self, account: Optional[Account], operation: Operation) -> None:
        """
        Raises:
            Forbidden: If the caller's tier is below the operation's minimum
        """
        role = role_of(account)
        if not self.is_allowed(role, operation):
            log_action(
                logger, "info", "Operation refused for insufficient tier",
                user_id=account.id if account else None,
                action=operation.value,
                extra={"role": role.name, "required": self.required_role(operation).name}
            )
            raise Forbidden()

    def require_party(self, account: Account, record: TransferRecord,
                      sender_only: bool = False) -> None:
        """
        Raises:
            Forbidden: If the account is not a party to the transfer
                (or, with sender_only, not its sender)
        """
        allowed = (account.id == record.sender_id) if sender_only else record.involves(account.id)
        if not allowed:
            log_action(
                logger, "info", "Access to foreign transfer refused",
                user_id=account.id, action="require_party", resource=f"transfer:{record.id}"
            )
            raise Forbidden()
