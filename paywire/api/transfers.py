"""
Internal transfer endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from .auth import get_current_account, get_service
from .schemas import (
    CreateTransferRequest, IDResponse, TransferListResponse, TransferResponse
)
from ..models import Account
from ..service import TransferService


router = APIRouter()


@router.get("/", response_model=TransferListResponse)
def list_transfers(
    limit: Optional[int] = Query(None, ge=0),
    account: Account = Depends(get_current_account),
    service: TransferService = Depends(get_service)
):
    """Caller's most recent transfers, censored for the caller"""
    transfers = service.list_transfers(account, limit)
    return {"transactions": [t.to_dict() for t in transfers]}


@router.post("/", response_model=IDResponse)
def create_transfer(
    request: CreateTransferRequest,
    account: Account = Depends(get_current_account),
    service: TransferService = Depends(get_service)
):
    """Move funds from the caller to a recipient"""
    transfer = service.create_transfer(account, request.recipient_id, request.sum)
    return {"id": str(transfer.id)}


@router.get("/{transfer_id}/", response_model=TransferResponse)
def get_transfer(
    transfer_id: int = Path(..., gt=0),
    account: Account = Depends(get_current_account),
    service: TransferService = Depends(get_service)
):
    """One transfer the caller took part in, censored for the caller"""
    transfer = service.get_transfer(account, transfer_id)
    return {"transaction": transfer.to_dict()}


@router.post("/{transfer_id}/", response_model=IDResponse)
def repeat_transfer(
    transfer_id: int = Path(..., gt=0),
    account: Account = Depends(get_current_account),
    service: TransferService = Depends(get_service)
):
    """Send a transfer the caller made before once more"""
    transfer = service.repeat_transfer(account, transfer_id)
    return {"id": str(transfer.id)}
