"""
Login, registration and account endpoints
"""

from fastapi import APIRouter, Depends, Path

from .auth import get_current_account, get_service
from .schemas import AuthResponse, LoginRequest, RegisterRequest, UserResponse
from ..models import Account
from ..service import TransferService
from ..tokens import BEARER_SCHEME


router = APIRouter()


@router.post("/login/", response_model=AuthResponse)
def login(
    request: LoginRequest,
    service: TransferService = Depends(get_service)
):
    """Exchange email and password for a bearer token"""
    token = service.login(request.login, request.password)
    return {"auth": f"{BEARER_SCHEME}{token}"}


@router.post("/register/", response_model=AuthResponse)
def register(
    request: RegisterRequest,
    service: TransferService = Depends(get_service)
):
    """Register a regular account and return its bearer token"""
    _, token = service.register(request.email, request.name, request.password)
    return {"auth": f"{BEARER_SCHEME}{token}"}


@router.get("/users/me/", response_model=UserResponse)
def get_me(account: Account = Depends(get_current_account)):
    """Account of the caller"""
    return {"user": account.to_dict()}


@router.get("/users/{account_id}/", response_model=UserResponse)
def get_user(
    account_id: int = Path(..., gt=0),
    account: Account = Depends(get_current_account),
    service: TransferService = Depends(get_service)
):
    """Own account, or any account for trusted callers"""
    user = service.get_account(account, account_id)
    return {"user": user.to_dict()}
