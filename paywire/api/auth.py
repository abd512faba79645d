"""
Authentication dependencies
"""

from typing import Optional

from fastapi import Depends, Header, Request

from ..models import Account
from ..service import TransferService
from ..tokens import parse_bearer


def get_service(request: Request) -> TransferService:
    """Service bound to the running application"""
    return request.app.state.service


def get_current_account(
    authorization: Optional[str] = Header(None),
    service: TransferService = Depends(get_service)
) -> Account:
    """Account identified by the Authorization header; 401 otherwise"""
    return service.authenticate(parse_bearer(authorization))
