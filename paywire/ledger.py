"""
Internal Transfer Ledger Engine

Moves funds between two accounts as one atomic unit: a conditional debit of
the sender, a credit of the recipient and an append-only transfer record.
Either all three commit or none do. The engine keeps no locks or state of
its own; conflicting transfers are serialized by the repository.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List

from .errors import (
    AccountNotFound, Conflict, InsufficientFunds, InvalidSum, RecipientNotFound, SelfTransfer,
    SenderNotFound, TransferNotFound
)
from .models import TransferRecord
from .money import AmountLike, to_amount
from .storage import TransferRepository
from .logging_config import get_logger, log_action


logger = get_logger("paywire.ledger")


class LedgerEngine:
    """
    Executes transfers against a TransferRepository and reads the transfer log
    """

    def __init__(self, repository: TransferRepository):
        self.repository = repository

    def create_transfer(self, sender_id: int, recipient_id: int,
                        magnitude: AmountLike) -> TransferRecord:
        """
        Transfer funds from sender to recipient

        Args:
            sender_id: Account debited
            recipient_id: Account credited
            magnitude: Positive amount, rounded to cents

        Returns:
            The committed TransferRecord

        Raises:
            InvalidSum: If magnitude is not a positive amount
            SelfTransfer: If sender and recipient are the same account
            SenderNotFound, RecipientNotFound: If either account is missing
            InsufficientFunds: If the debit would overdraw the sender
            Conflict: If the recipient disappears mid-transfer
            StorageFailure: If the store fails; nothing is committed
        """
        try:
            amount = to_amount(magnitude)
            if amount <= 0:
                raise InvalidSum(f"Transfer magnitude must be positive, got {amount}")
            if sender_id == recipient_id:
                raise SelfTransfer(f"Account #{sender_id} cannot transfer to itself")

            with self.repository.atomic() as unit:
                sender = unit.get_account(sender_id)
                if sender is None:
                    raise SenderNotFound(f"Sender #{sender_id} not found")
                recipient = unit.get_account(recipient_id)
                if recipient is None:
                    raise RecipientNotFound(f"Recipient #{recipient_id} not found")

                sender_before = sender.balance
                recipient_before = recipient.balance

                # Debit first; the predicate is evaluated by the store at write time
                if not unit.debit_if_sufficient(sender_id, amount):
                    raise InsufficientFunds(
                        f"Account #{sender_id} cannot cover {amount}"
                    )
                if not unit.credit(recipient_id, amount):
                    raise Conflict(f"Recipient #{recipient_id} is missing")

                sender_after = unit.get_balance(sender_id)
                recipient_after = unit.get_balance(recipient_id)
                if sender_after is None or recipient_after is None:
                    raise Conflict("Account vanished during transfer")
                if sender_after < 0:
                    raise InsufficientFunds("Debit processing causes insufficient funds")
                if (sender_after != sender_before - amount
                        or recipient_after != recipient_before + amount):
                    raise Conflict("Balances changed concurrently during transfer")

                record = unit.insert_transfer(TransferRecord(
                    id=0,
                    created_at=datetime.now(timezone.utc),
                    sender_id=sender_id,
                    recipient_id=recipient_id,
                    magnitude=amount,
                    sender_balance_before=sender_before,
                    sender_balance_after=sender_after,
                    recipient_balance_before=recipient_before,
                    recipient_balance_after=recipient_after,
                ))
        except (InvalidSum, InsufficientFunds, Conflict, SenderNotFound, RecipientNotFound) as e:
            log_action(
                logger, "info", f"Transfer refused: {e.message}",
                user_id=sender_id, action="create_transfer",
                extra={"recipient_id": recipient_id, "magnitude": str(magnitude),
                       "reason": type(e).__name__}
            )
            raise

        log_action(
            logger, "info", "Transfer committed",
            user_id=sender_id, action="create_transfer", resource=f"transfer:{record.id}",
            extra={"recipient_id": recipient_id, "magnitude": str(amount)}
        )
        return record

    def repeat_transfer(self, transfer_id: int) -> TransferRecord:
        """
        Re-run a past transfer with its original sender, recipient and magnitude

        The original record is left untouched; all checks are those of
        create_transfer against current balances.

        Raises:
            TransferNotFound: If no transfer has this ID
        """
        original = self.get_transfer(transfer_id)
        logger.debug("Repeating transfer #%s", original.id)
        return self.create_transfer(original.sender_id, original.recipient_id, original.magnitude)

    def get_transfer(self, transfer_id: int) -> TransferRecord:
        """
        Raises:
            TransferNotFound: If no transfer has this ID
        """
        record = self.repository.get_transfer(transfer_id)
        if record is None:
            raise TransferNotFound(f"Transfer #{transfer_id} not found")
        return record

    def list_recent(self, account_id: int, limit: int) -> List[TransferRecord]:
        """Most recent transfers involving the account, newest first, at most limit"""
        if limit <= 0:
            return []
        return self.repository.list_recent_transfers(account_id, limit)

    def balance_of(self, account_id: int) -> Decimal:
        """
        Raises:
            AccountNotFound: If the account does not exist
        """
        account = self.repository.get_account(account_id)
        if account is None:
            raise AccountNotFound(f"Account #{account_id} not found")
        return account.balance
