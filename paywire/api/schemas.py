"""
Pydantic schemas for API requests and responses
"""

from typing import Any, Dict, List, Union
from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    login: str = Field(..., description="Registered email address")
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: str


class CreateTransferRequest(BaseModel):
    recipient_id: int = Field(..., gt=0)
    sum: Union[str, int, float] = Field(..., description="Decimal amount, preferably as a string")


class AuthResponse(BaseModel):
    auth: str = Field(..., description="Authorization header value, 'Bearer <token>'")


class IDResponse(BaseModel):
    id: str


class UserResponse(BaseModel):
    user: Dict[str, Any]


class TransferResponse(BaseModel):
    transaction: Dict[str, Any]


class TransferListResponse(BaseModel):
    transactions: List[Dict[str, Any]]
