"""
Censored Transfer Projection

Shapes a transfer record for one viewer. The viewer only ever sees their
own balances; the counterparty's balances have no field to land in.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from .errors import Forbidden
from .models import TransferRecord
from .money import format_amount


@dataclass(frozen=True)
class CensoredTransfer:
    """A transfer as seen by one of its parties"""
    id: int
    created_at: datetime
    is_credit: bool
    signed_magnitude: Decimal  # positive for credit, negative for debit
    balance_before: Decimal    # viewer's own balance
    balance_after: Decimal
    counterparty_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "date": self.created_at.isoformat(),
            "is_credit": self.is_credit,
            "sum": format_amount(self.signed_magnitude),
            "balance_before": format_amount(self.balance_before),
            "balance_after": format_amount(self.balance_after),
            "user_id": str(self.counterparty_id),
        }


def project(viewer_id: int, record: TransferRecord) -> CensoredTransfer:
    """
    Project a transfer record for a viewer

    Raises:
        Forbidden: If the viewer is neither sender nor recipient
    """
    if not record.involves(viewer_id):
        raise Forbidden()

    if viewer_id == record.recipient_id:
        return CensoredTransfer(
            id=record.id,
            created_at=record.created_at,
            is_credit=True,
            signed_magnitude=record.magnitude,
            balance_before=record.recipient_balance_before,
            balance_after=record.recipient_balance_after,
            counterparty_id=record.sender_id,
        )
    return CensoredTransfer(
        id=record.id,
        created_at=record.created_at,
        is_credit=False,
        signed_magnitude=-record.magnitude,
        balance_before=record.sender_balance_before,
        balance_after=record.sender_balance_after,
        counterparty_id=record.recipient_id,
    )
